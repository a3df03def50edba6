"""grid-pulse: periodic home energy telemetry logger"""

__version__ = "0.3.0"

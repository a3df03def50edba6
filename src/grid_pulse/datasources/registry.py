"""Source registry for managing all configured telemetry sources"""

from typing import Optional

from ..log_handler import get_structured_logger
from .base import ReadableSource

logger = get_structured_logger(__name__, component="registry")


class SourceRegistry:
    """
    Registry for managing telemetry sources.

    Owns every source instance for the lifetime of the process and releases
    their connections on shutdown.
    """

    def __init__(self):
        """Initialize empty registry"""
        self._sources: dict[str, ReadableSource] = {}

    def register(self, source: ReadableSource) -> None:
        """
        Register a source.

        Args:
            source: The source to register

        Raises:
            ValueError: If a source with the same name is already registered
        """
        if source.name in self._sources:
            raise ValueError(f"Source '{source.name}' is already registered")

        self._sources[source.name] = source
        metadata = source.get_metadata()
        logger.info(
            f"Registered source: {source.name}",
            kind=metadata.kind,
            metrics=len(source.names()),
        )

    def get(self, name: str) -> Optional[ReadableSource]:
        """
        Get a source by name.

        Returns:
            The source, or None if not found
        """
        return self._sources.get(name)

    def get_all(self) -> list[ReadableSource]:
        """Get all registered sources in registration order"""
        return list(self._sources.values())

    async def shutdown_all(self) -> None:
        """Shutdown all registered sources"""
        logger.info(f"Shutting down {len(self._sources)} source(s)...")

        for name, source in self._sources.items():
            try:
                await source.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down source '{name}': {e}")

    def __len__(self) -> int:
        """Return number of registered sources"""
        return len(self._sources)

    def __contains__(self, name: str) -> bool:
        """Check if a source is registered"""
        return name in self._sources

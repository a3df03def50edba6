"""INA219 power monitor source over I2C"""

import asyncio
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Optional

from smbus2 import SMBus

from ..config import PowerSourceConfig
from ..errors import TransportError
from ..log_handler import get_structured_logger
from .base import ReadableSource, SourceMetadata

logger = get_structured_logger(__name__, component="power")

METRICS = ("voltage", "current", "power")

# INA219 registers
REG_CONFIG = 0x00
REG_BUS_VOLTAGE = 0x02
REG_POWER = 0x03
REG_CURRENT = 0x04
REG_CALIBRATION = 0x05

MODE_MASK = 0x0007  # continuous shunt and bus conversion
WAKE_DELAY = 40e-6  # seconds the device needs after leaving power-down
SHUNT_OHMS = 0.1


class Ina219:
    """Minimal register access for one INA219 on an open SMBus."""

    def __init__(self, bus: Any, address: int):
        self._bus = bus
        self._address = address

    def read(self, register: int) -> int:
        high, low = self._bus.read_i2c_block_data(self._address, register, 2)
        return (high << 8) | low

    def read_signed(self, register: int) -> int:
        """Read a two's complement register (shunt voltage and current)."""
        value = self.read(register)
        return value - 0x10000 if value & 0x8000 else value

    def write(self, register: int, value: int) -> None:
        self._bus.write_i2c_block_data(
            self._address, register, [(value >> 8) & 0xFF, value & 0xFF]
        )

    def calibrate(self, value: int) -> None:
        self.write(REG_CALIBRATION, value)

    def wake(self) -> None:
        self.write(REG_CONFIG, self.read(REG_CONFIG) | MODE_MASK)
        time.sleep(WAKE_DELAY)

    def sleep(self) -> None:
        self.write(REG_CONFIG, self.read(REG_CONFIG) & (0xFFFF ^ MODE_MASK))


@contextmanager
def awake(device: Ina219) -> Iterator[Ina219]:
    """Wake the device for the duration of the block; power it down on every exit."""
    try:
        device.wake()
        yield device
    finally:
        try:
            device.sleep()
        except OSError as e:
            logger.error("Failed to put INA219 back to sleep", error=str(e))


class PowerSource(ReadableSource):
    """
    Voltage, current and power from an INA219 shunt monitor.

    The device is opened, calibrated and woken for each sample and always
    returned to power-down mode afterwards. Blocking bus access runs in a
    worker thread.
    """

    kind = "power"

    def __init__(
        self,
        name: str,
        config: PowerSourceConfig,
        bus_factory: Optional[Callable[[Any], Any]] = None,
    ):
        super().__init__(name)
        self._config = config
        self._bus_factory = bus_factory or SMBus
        self._current_lsb = float(config.expected_amps) / 32800.0

    @property
    def metrics(self) -> tuple[str, ...]:
        return METRICS

    @property
    def calibration(self) -> int:
        return int(0.04096 / (self._current_lsb * SHUNT_OHMS))

    async def _measure(self) -> list[float]:
        return await asyncio.to_thread(self._read_sync)

    def _read_sync(self) -> list[float]:
        """Synchronous sensor reading (runs in thread pool)"""
        try:
            bus = self._bus_factory(self._config.bus)
        except (OSError, ValueError) as e:
            raise TransportError(f"could not open I2C bus {self._config.bus}: {e}") from e

        try:
            device = Ina219(bus, self._config.address)
            device.calibrate(self.calibration)
            with awake(device):
                voltage = (device.read(REG_BUS_VOLTAGE) >> 3) * 4.0 / 1000.0
                current = device.read_signed(REG_CURRENT) * 1000.0 * self._current_lsb
                power = device.read(REG_POWER) * 20.0 * self._current_lsb * 1000.0
                if current < 0.0:
                    # The power register is unsigned; it takes the direction of the current.
                    power = -power
        except OSError as e:
            raise TransportError(f"I2C transfer failed on {self._config.bus}: {e}") from e
        finally:
            bus.close()

        if power <= 0.0 and self._config.zero_on_idle:
            # A non-positive reading may be real idle or a glitch; see zero_on_idle.
            logger.info(
                "Non-positive power reading reported as zeros",
                source=self.name,
                voltage=voltage,
                current=current,
                power=power,
            )
            return [0.0, 0.0, 0.0]

        return [voltage, current, power]

    def get_metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.name,
            kind=self.kind,
            description=f"INA219 at {self._config.address:#04x} on {self._config.bus}",
        )

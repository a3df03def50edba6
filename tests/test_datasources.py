"""Tests for the source contract, registry and factory"""

from collections.abc import Sequence

import pytest

from grid_pulse.config import (
    Config,
    FoxEssCloudSourceConfig,
    FoxEssSourceConfig,
    FritzSourceConfig,
    GeneralConfig,
    PowerSourceConfig,
    WeatherSourceConfig,
)
from grid_pulse.datasources import (
    SENTINEL,
    FoxEssCloudSource,
    FoxEssOpenApiSource,
    FritzSource,
    PowerSource,
    SourceMetadata,
    SourceRegistry,
    WeatherSource,
    build_loops,
    create_source,
    fallback_row,
)
from grid_pulse.errors import ConfigError
from tests.mock_datasource import MockSource


class WrongWidthSource(MockSource):
    async def _measure(self) -> Sequence[float]:
        return [1.0]


class CrashingSource(MockSource):
    async def _measure(self) -> Sequence[float]:
        raise ZeroDivisionError("boom")


class TestReadableSource:
    """Test the sample() contract shared by every source"""

    def test_names_are_prefixed(self):
        """Column names are <source>_<metric> in metric order"""
        source = MockSource(name="fritz", metrics=("power", "energy", "temperature"))
        assert source.names() == ["fritz_power", "fritz_energy", "fritz_temperature"]

    def test_names_are_stable(self):
        """names() returns the same list on every call"""
        source = MockSource(name="owa", metrics=("temperature", "humidity"))
        assert source.names() == source.names()

    async def test_sample_returns_floats(self):
        """Successful samples are converted to floats"""
        source = MockSource(metrics=("a", "b"), rows=[[3, 4]])
        row = await source.sample()
        assert row == [3.0, 4.0]
        assert all(isinstance(v, float) for v in row)

    async def test_sample_failure_returns_sentinels(self):
        """A failing measurement yields a full sentinel row"""
        source = MockSource(metrics=("a", "b", "c"), fail_on_measure=True)
        assert await source.sample() == [SENTINEL, SENTINEL, SENTINEL]

    async def test_sample_wrong_width_returns_sentinels(self):
        """A measurement with the wrong number of values is rejected"""
        source = WrongWidthSource(metrics=("a", "b"))
        assert await source.sample() == [-1.0, -1.0]

    async def test_sample_unexpected_exception_returns_sentinels(self):
        """Non-grid-pulse exceptions are contained too"""
        source = CrashingSource(metrics=("a",))
        assert await source.sample() == [-1.0]

    async def test_failure_is_logged(self, caplog):
        """Each failure produces one warning on the diagnostic channel"""
        source = MockSource(name="fox", fail_on_measure=True)
        with caplog.at_level("WARNING"):
            await source.sample()

        failures = [r for r in caplog.records if r.getMessage() == "Sample failed"]
        assert len(failures) == 1
        assert failures[0].source == "fox"
        assert "TransportError" in failures[0].error

    async def test_status_tracking(self):
        """Sample and error counts are tracked"""
        source = MockSource()
        await source.sample()
        source.fail_on_measure = True
        await source.sample()

        status = source.get_status()
        assert status.source_id == "mock"
        assert status.sample_count == 2
        assert status.error_count == 1
        assert status.last_success is not None
        assert "Mock measurement failure" in status.last_error

    async def test_recovers_after_failure(self):
        """A failed sample does not poison the next one"""
        source = MockSource(rows=[[5.0, 6.0]])
        source.fail_on_measure = True
        assert await source.sample() == [-1.0, -1.0]
        source.fail_on_measure = False
        assert await source.sample() == [5.0, 6.0]

    def test_fallback_row(self):
        assert fallback_row(3) == [-1.0, -1.0, -1.0]
        assert fallback_row(0) == []

    def test_metadata(self):
        metadata = MockSource(name="test").get_metadata()
        assert isinstance(metadata, SourceMetadata)
        assert metadata.source_id == "test"
        assert metadata.kind == "mock"
        assert metadata.requires_auth is False


class TestSourceRegistry:
    """Test source registry"""

    def test_register_and_get(self):
        registry = SourceRegistry()
        source = MockSource(name="test")
        registry.register(source)

        assert "test" in registry
        assert len(registry) == 1
        assert registry.get("test") is source
        assert registry.get("missing") is None

    def test_duplicate_registration(self):
        """Registering the same name twice raises"""
        registry = SourceRegistry()
        registry.register(MockSource(name="test"))

        with pytest.raises(ValueError, match="already registered"):
            registry.register(MockSource(name="test"))

    def test_get_all_keeps_order(self):
        registry = SourceRegistry()
        for name in ("c", "a", "b"):
            registry.register(MockSource(name=name))

        assert [s.name for s in registry.get_all()] == ["c", "a", "b"]

    async def test_shutdown_all(self):
        """Shutdown reaches every source even if one fails"""
        registry = SourceRegistry()
        failing = MockSource(name="failing", fail_on_shutdown=True)
        healthy = MockSource(name="healthy")
        registry.register(failing)
        registry.register(healthy)

        await registry.shutdown_all()

        assert failing.shutdown_called
        assert healthy.shutdown_called


class TestFactory:
    """Test building sources from config records"""

    @pytest.mark.parametrize(
        "source_config, expected",
        [
            (WeatherSourceConfig(lat=1.0, long=2.0, app_id="key"), WeatherSource),
            (PowerSourceConfig(bus="/dev/i2c-1", address=0x40, expected_amps=3.2), PowerSource),
            (FritzSourceConfig(url="http://fritz.box", user="u", password="p", ain="1"), FritzSource),
            (
                FoxEssSourceConfig(api_key="k", inverter_id="sn", variables=["pvPower"]),
                FoxEssOpenApiSource,
            ),
            (
                FoxEssCloudSourceConfig(
                    user="u", password="p", inverter_id="id", variables=["pvPower"]
                ),
                FoxEssCloudSource,
            ),
        ],
    )
    async def test_create_source(self, source_config, expected):
        source = create_source("src", source_config)
        try:
            assert isinstance(source, expected)
            assert source.name == "src"
            assert source.get_metadata().kind == source.kind
        finally:
            await source.shutdown()

    def test_create_source_rejects_unknown_record(self):
        with pytest.raises(ConfigError):
            create_source("src", object())

    async def test_build_loops(self):
        """Sources land in their loop in configured order and are registered"""
        config = Config(
            general=GeneralConfig(fast_loop=["fritz", "power"], slow_loop=["owa"]),
            sources={
                "fritz": FritzSourceConfig(url="http://fritz.box", user="u", password="p", ain="1"),
                "power": PowerSourceConfig(bus="/dev/i2c-1", address=0x40, expected_amps=3.2),
                "owa": WeatherSourceConfig(lat=1.0, long=2.0, app_id="key"),
            },
        )
        registry = SourceRegistry()

        loops = build_loops(config, registry)
        try:
            assert [s.name for s in loops.fast] == ["fritz", "power"]
            assert [s.name for s in loops.slow] == ["owa"]
            assert len(registry) == 3
        finally:
            await registry.shutdown_all()

    async def test_build_loops_skips_dropped_sources(self):
        """Names without a usable config (unknown type) are skipped"""
        config = Config(
            general=GeneralConfig(fast_loop=["mystery"], slow_loop=["owa"]),
            sources={"owa": WeatherSourceConfig(lat=1.0, long=2.0, app_id="key")},
        )
        registry = SourceRegistry()

        loops = build_loops(config, registry)
        try:
            assert loops.fast == []
            assert [s.name for s in loops.slow] == ["owa"]
        finally:
            await registry.shutdown_all()

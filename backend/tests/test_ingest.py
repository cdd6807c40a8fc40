"""Tests for reading ingest and topic/payload parsing."""

from datetime import timedelta

import pytest

from greenhouse.exceptions import InvalidReadingError
from greenhouse.schemas.monitoring import AlertType, SensorType
from greenhouse.services.ingest import normalize_sensor_type, parse_payload, parse_topic


class TestParsing:
    def test_parse_topic(self):
        assert parse_topic("esp32_03/humidity") == ("3", "humidity")
        assert parse_topic("esp32_1/status") == ("1", "status")

    @pytest.mark.parametrize("topic", ["sensors/1/temperature", "esp32_x/temperature", "esp32_1/a/b"])
    def test_foreign_topics(self, topic):
        assert parse_topic(topic) is None

    def test_parse_payload_variants(self):
        assert parse_payload("temperature", b'{"temperature": 21.5}') == 21.5
        assert parse_payload("temperature", "22") == 22.0
        assert parse_payload("humidity", " 61.25 ") == 61.25
        assert parse_payload("light", '{"light_level": 830}') == 830

    @pytest.mark.parametrize("payload", ['{"humidity": 60}', "warm", '{"temperature": "hot"}', "NaN"])
    def test_bad_payloads(self, payload):
        with pytest.raises(InvalidReadingError):
            parse_payload("temperature", payload)

    def test_normalize_sensor_type(self):
        assert normalize_sensor_type("Light_Level") is SensorType.light
        assert normalize_sensor_type(SensorType.humidity) is SensorType.humidity
        with pytest.raises(InvalidReadingError):
            normalize_sensor_type("pressure")


class TestOnReading:
    @pytest.mark.asyncio
    async def test_in_range_reading_is_cached_without_alert(self, ctx, store, clock):
        result = await ctx.ingest.on_reading(1, "temperature", 22)

        assert result.emission is None
        assert result.reading.device_id == "1"
        assert ctx.cache.get("1", "temperature").observed_at == clock.now
        assert store.alerts == {}

    @pytest.mark.asyncio
    async def test_breaching_reading_alerts_immediately(self, ctx, store):
        result = await ctx.ingest.on_reading("1", "temperature", 12)

        assert result.emission is not None
        assert not result.emission.duplicate
        assert result.emission.alert.type == AlertType.temperature
        assert result.emission.alert.plant_id == "plant-1"
        # breach records belong to the sweep
        assert store.breaches == {}

    @pytest.mark.asyncio
    async def test_repeated_breach_within_window_is_suppressed(self, ctx, store, clock):
        await ctx.ingest.on_reading("1", "temperature", 12)
        clock.advance(minutes=2)
        result = await ctx.ingest.on_reading("1", "temperature", 11)

        assert result.emission.duplicate
        assert len(store.alerts) == 1

    @pytest.mark.asyncio
    async def test_sweep_after_ingest_does_not_duplicate_alert(self, ctx, store):
        await ctx.ingest.on_reading("1", "temperature", 12)

        report = await ctx.monitor.run_sweep()

        assert report.new_breaches == 1
        assert report.alerts_created == 0
        assert len(store.alerts) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["hot", None, True, float("inf")])
    async def test_invalid_value_is_rejected(self, ctx, value):
        assert await ctx.ingest.on_reading("1", "temperature", value) is None
        assert ctx.cache.get("1", "temperature") is None

    @pytest.mark.asyncio
    async def test_unknown_sensor_type_is_rejected(self, ctx):
        assert await ctx.ingest.on_reading("1", "pressure", 1013) is None
        assert len(ctx.cache) == 0

    @pytest.mark.asyncio
    async def test_unassigned_device_is_cached_only(self, ctx, store):
        result = await ctx.ingest.on_reading("42", "temperature", 5)

        assert result.emission is None
        assert ctx.cache.get("42", "temperature").value == 5
        assert store.alerts == {}

    @pytest.mark.asyncio
    async def test_plant_lookup_failure_keeps_reading(self, ctx, plant_store, store):
        plant_store.fail = True

        result = await ctx.ingest.on_reading("1", "temperature", 12)

        assert result.emission is None
        assert ctx.cache.get("1", "temperature").value == 12
        assert store.alerts == {}

    @pytest.mark.asyncio
    async def test_explicit_observed_at_can_be_stale(self, ctx, store, clock):
        await ctx.ingest.on_reading("2", "temperature", 5, observed_at=clock.now - timedelta(minutes=20))

        report = await ctx.monitor.run_sweep()

        assert report.skipped_stale == 1
        assert store.breaches == {}


class TestOnMessage:
    @pytest.mark.asyncio
    async def test_sensor_message(self, ctx):
        result = await ctx.ingest.on_message("esp32_01/humidity", b'{"humidity": 95}')

        assert result.reading.value == 95
        assert result.emission.alert.type == AlertType.humidity

    @pytest.mark.asyncio
    async def test_light_level_alias(self, ctx):
        await ctx.ingest.on_message("esp32_2/light_level", "830")

        assert ctx.cache.get("2", "light").value == 830

    @pytest.mark.asyncio
    async def test_invalid_messages_are_dropped(self, ctx):
        assert await ctx.ingest.on_message("garden/1/temperature", "20") is None
        assert await ctx.ingest.on_message("esp32_1/temperature", "warm") is None
        assert len(ctx.cache) == 0

    @pytest.mark.asyncio
    async def test_offline_status_raises_alert(self, ctx, store):
        emission = await ctx.ingest.on_message(
            "esp32_1/status", b'{"status": "offline", "reason": "low battery"}'
        )

        assert emission.alert.type == AlertType.offline
        assert emission.alert.message == "Device 1 reported offline: low battery"
        assert len(store.alerts) == 1

    @pytest.mark.asyncio
    async def test_plain_offline_status(self, ctx):
        emission = await ctx.ingest.on_status("2", "OFFLINE")

        assert emission.alert.plant_id == "plant-2"

    @pytest.mark.asyncio
    async def test_online_status_is_ignored(self, ctx, store):
        assert await ctx.ingest.on_message("esp32_1/status", '{"status": "online"}') is None
        assert store.alerts == {}

    @pytest.mark.asyncio
    async def test_offline_for_unassigned_device(self, ctx, store):
        assert await ctx.ingest.on_status("42", "offline") is None
        assert store.alerts == {}

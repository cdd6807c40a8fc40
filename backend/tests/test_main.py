"""Tests for the application lifespan (startup and shutdown)."""

import pytest


@pytest.fixture
def main_module(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://greenhouse@localhost:5432/greenhouse")
    monkeypatch.setenv("MONITOR_AUTOSTART", "false")
    from greenhouse import config

    config.get_settings.cache_clear()
    import greenhouse.main as main

    yield main
    config.get_settings.cache_clear()


@pytest.fixture
def pool_calls(main_module, monkeypatch):
    calls = []

    async def fake_get_pool():
        calls.append("open")
        return object()

    async def fake_close_pool():
        calls.append("close")

    monkeypatch.setattr(main_module, "get_pool", fake_get_pool)
    monkeypatch.setattr(main_module, "close_pool", fake_close_pool)
    return calls


class TestLifespan:
    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self, main_module, pool_calls, monkeypatch):
        async def ensure_schema(pool):
            pool_calls.append("schema")

        monkeypatch.setattr(main_module, "ensure_schema", ensure_schema)

        async with main_module.lifespan(main_module.app):
            assert main_module.app.state.monitoring.monitor.state.value == "stopped"

        assert pool_calls == ["open", "schema", "close"]

    @pytest.mark.asyncio
    async def test_pool_closed_when_schema_bootstrap_fails(self, main_module, pool_calls, monkeypatch):
        async def ensure_schema(pool):
            raise OSError("database unavailable")

        monkeypatch.setattr(main_module, "ensure_schema", ensure_schema)

        with pytest.raises(OSError):
            async with main_module.lifespan(main_module.app):
                pass

        assert pool_calls == ["open", "close"]

"""Tests for the detector model registry."""
import asyncio

import pytest

from attendance_station.core.exceptions import ModelLoadError
from attendance_station.services.model_registry import ModelRegistry, ModelState


class TestModelRegistry:
    """Test suite for ModelRegistry."""

    async def test_concurrent_loads_share_one_attempt(self):
        """Should call the loader once however many callers wait."""
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0.02)

        registry = ModelRegistry(loader)

        await asyncio.gather(registry.load(), registry.load(), registry.load())

        assert calls == [1]
        assert registry.state == ModelState.LOADED
        assert registry.is_ready()

    async def test_loaded_registry_does_not_reload(self):
        calls = []

        async def loader():
            calls.append(1)

        registry = ModelRegistry(loader)
        await registry.load()
        await registry.load()

        assert calls == [1]

    async def test_failure_is_reported_and_retried(self):
        attempts = []

        async def loader():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("model files missing")

        registry = ModelRegistry(loader)

        with pytest.raises(ModelLoadError) as exc_info:
            await registry.load()

        assert "model files missing" in exc_info.value.message
        assert registry.state == ModelState.FAILED
        assert registry.last_error == "model files missing"

        await registry.load()

        assert registry.state == ModelState.LOADED
        assert registry.last_error is None
        assert len(attempts) == 2

    async def test_waiters_see_the_failure(self):
        async def loader():
            await asyncio.sleep(0.02)
            raise ModelLoadError("no weights")

        registry = ModelRegistry(loader)

        results = await asyncio.gather(registry.load(), registry.load(), return_exceptions=True)

        assert all(isinstance(r, ModelLoadError) for r in results)

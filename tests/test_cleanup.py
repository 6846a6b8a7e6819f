import asyncio

from core.cleanup import CleanupService
from services.rate_limit import RateLimiter


async def test_run_once_sweeps_every_store(settings, cache, recorder, clock):
    limiter = RateLimiter(window_seconds=60, clock=clock)
    cleanup = CleanupService(cache, recorder, limiter, settings)

    cache.set("animals:{}", [1], ttl=10)
    cache.set("tasks:{}", [2], ttl=10_000_000)
    recorder.track("animals:{}", "animals", 5)
    limiter.check("10.0.0.1")
    clock.advance(25 * 3600)
    recorder.track("tasks:{}", "tasks", 5)

    results = await cleanup.run_once()
    assert results == {"expired_cache": 1, "old_metrics": 1, "expired_rate_limits": 1}
    assert len(cache) == 1
    assert len(recorder) == 1
    assert len(limiter) == 0


async def test_start_stop_lifecycle(settings, cache, recorder, clock):
    cleanup = CleanupService(cache, recorder, RateLimiter(clock=clock), settings)

    await cleanup.start()
    assert cleanup.running
    task = cleanup._task
    await cleanup.start()
    assert cleanup._task is task

    await cleanup.stop()
    assert not cleanup.running
    assert task.done()
    assert cleanup._task is None


async def test_loop_runs_on_interval(settings, cache, recorder, clock, monkeypatch):
    cleanup = CleanupService(cache, recorder, RateLimiter(clock=clock), settings)
    runs = []
    monkeypatch.setattr(cleanup, "_run_cleanup", lambda: runs.append(1) or {})
    monkeypatch.setattr(settings, "cleanup_interval", 0.01)

    await cleanup.start()
    await asyncio.sleep(0.1)
    await cleanup.stop()
    assert len(runs) >= 2

"""PollingClient: subscription lifecycle, timers, dedup and cache helpers."""

import asyncio

import pytest

from models.data_access import SubscriptionState
from services.polling import PollingClient, make_cache_key

from conftest import wait_until


class FakeFetcher:
    """Remote fetch double; individual calls can be held open."""

    def __init__(self):
        self.calls = []
        self.gates = {}
        self.error = None
        self.delay = 0.0

    def hold(self, call_number: int) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[call_number] = gate
        return gate

    async def __call__(self, endpoint, params):
        self.calls.append((endpoint, params))
        number = len(self.calls)
        await asyncio.sleep(self.delay)
        if number in self.gates:
            await self.gates[number].wait()
        if self.error is not None:
            raise self.error
        return {"call": number}


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
async def client(gateway, cache, fetcher):
    client = PollingClient(gateway, cache, fetcher)
    yield client
    client.close()


def test_cache_key_is_canonical():
    assert make_cache_key("animals") == "animals:{}"
    assert make_cache_key("animals", {"b": 1, "a": "x"}) == 'animals:{"a":"x","b":1}'
    assert make_cache_key("animals", {"a": "x", "b": 1}) == make_cache_key("animals", {"b": 1, "a": "x"})


async def test_subscribe_runs_initial_fetch(client, fetcher, cache):
    sub = await client.subscribe("animals", {"limit": 10}, 0)

    assert sub.state is SubscriptionState.READY
    assert sub.data == {"call": 1}
    assert sub.loading is False
    assert sub.error is None
    assert sub.last_updated is not None
    assert fetcher.calls == [("animals", {"limit": 10})]
    assert cache.get('animals:{"limit":10}') == ({"call": 1}, True)


async def test_concurrent_identical_subscriptions_share_one_fetch(client, fetcher):
    first, second = await asyncio.gather(
        client.subscribe("health", {"limit": 10}, 30000, True),
        client.subscribe("health", {"limit": 10}, 30000, True),
    )

    assert len(fetcher.calls) == 1
    assert first.data == second.data == {"call": 1}
    assert client.inflight_keys() == set()


async def test_different_params_are_not_deduplicated(client, fetcher):
    await asyncio.gather(
        client.subscribe("health", {"limit": 10}, 0),
        client.subscribe("health", {"limit": 20}, 0),
    )
    assert len(fetcher.calls) == 2


async def test_fetch_error_is_captured(client, fetcher):
    fetcher.error = ConnectionError("network down")

    sub = await client.subscribe("animals", {}, 0)
    assert sub.state is SubscriptionState.ERRORED
    assert sub.error == "network down"
    assert sub.data is None
    assert sub.loading is False


async def test_unhealthy_without_cache_reports_error(client, pool, fetcher):
    pool.degrade()
    sub = await client.subscribe("animals", {}, 0)

    assert sub.state is SubscriptionState.ERRORED
    assert "No cached data available" in sub.error
    assert fetcher.calls == []


async def test_timer_refreshes_silently(client, fetcher):
    sub = await client.subscribe("animals", {}, 10)
    assert sub.timer_running

    gate = fetcher.hold(2)
    await wait_until(lambda: len(fetcher.calls) >= 2)
    # stale-while-revalidate: old value visible, no loading flag
    assert sub.loading is False
    assert sub.data == {"call": 1}

    gate.set()
    await wait_until(lambda: sub.data == {"call": 2})
    assert sub.state is SubscriptionState.READY


async def test_timer_keeps_ticking_after_failures(client, fetcher):
    fetcher.error = RuntimeError("upstream 500")
    sub = await client.subscribe("tasks", {}, 10)

    await wait_until(lambda: len(fetcher.calls) >= 3)
    assert sub.state is SubscriptionState.ERRORED
    assert sub.timer_running

    fetcher.error = None
    await wait_until(lambda: sub.state is SubscriptionState.READY)
    assert sub.error is None


async def test_rearm_keeps_refresh_already_running(client, fetcher):
    sub = await client.subscribe("animals", {}, 10)
    gate = fetcher.hold(2)
    await wait_until(lambda: len(fetcher.calls) == 2)

    sub.set_refresh_interval(60_000)
    gate.set()
    await wait_until(lambda: sub.data == {"call": 2})
    assert sub.state is SubscriptionState.READY


async def test_tick_skipped_while_refresh_running(client, fetcher):
    sub = await client.subscribe("animals", {}, 10)
    gate = fetcher.hold(2)
    await wait_until(lambda: len(fetcher.calls) == 2)

    running = sub._tick_fetch
    await asyncio.sleep(0.05)
    assert sub._tick_fetch is running
    assert len(fetcher.calls) == 2

    gate.set()
    await wait_until(running.done)


async def test_timer_runs_at_fixed_rate(client, fetcher):
    # each fetch takes most of the interval; a fixed delay would halve the rate
    fetcher.delay = 0.04
    sub = await client.subscribe("animals", {}, 50)
    start = len(fetcher.calls)

    await asyncio.sleep(0.5)
    assert len(fetcher.calls) - start >= 7
    sub.unsubscribe()


async def test_refetch_sets_loading(client, fetcher):
    sub = await client.subscribe("animals", {}, 0)
    gate = fetcher.hold(2)

    task = asyncio.create_task(sub.refetch())
    await wait_until(lambda: len(fetcher.calls) == 2)
    assert sub.loading is True
    assert sub.state is SubscriptionState.LOADING

    gate.set()
    await task
    assert sub.loading is False
    assert sub.data == {"call": 2}


async def test_zero_interval_or_disabled_arms_no_timer(client, fetcher):
    no_interval = await client.subscribe("animals", {}, 0)
    disabled = await client.subscribe("tasks", {}, 10, enabled=False)

    assert not no_interval.timer_running
    assert not disabled.timer_running
    assert disabled.state is SubscriptionState.READY
    await asyncio.sleep(0.05)
    assert len(fetcher.calls) == 2


async def test_toggling_enabled_rearms_one_timer(client, fetcher):
    sub = await client.subscribe("animals", {}, 10, enabled=False)
    assert not sub.timer_running

    sub.set_enabled(True)
    first_timer = sub._timer
    assert sub.timer_running

    sub.set_enabled(True)
    assert sub._timer is not first_timer
    await wait_until(first_timer.done)
    assert first_timer.cancelled()

    sub.set_enabled(False)
    assert not sub.timer_running


async def test_changing_interval_replaces_timer(client, fetcher):
    sub = await client.subscribe("animals", {}, 60_000)
    old_timer = sub._timer

    sub.set_refresh_interval(10)
    assert sub._timer is not old_timer
    await wait_until(old_timer.done)
    await wait_until(lambda: len(fetcher.calls) >= 2)

    sub.set_refresh_interval(0)
    assert not sub.timer_running


async def test_unsubscribe_cancels_timer(client, fetcher):
    sub = await client.subscribe("animals", {}, 10)
    sub.unsubscribe()

    assert sub.state is SubscriptionState.CLOSED
    assert not sub.timer_running
    assert sub not in client.subscriptions

    calls = len(fetcher.calls)
    await asyncio.sleep(0.05)
    assert len(fetcher.calls) == calls


async def test_unsubscribe_discards_inflight_result(client, fetcher, cache):
    sub = await client.subscribe("animals", {}, 0)
    gate = fetcher.hold(2)

    task = asyncio.create_task(sub.refetch())
    await wait_until(lambda: len(fetcher.calls) == 2)
    sub.unsubscribe()
    gate.set()
    await task

    assert sub.data == {"call": 1}
    assert sub.state is SubscriptionState.CLOSED
    assert cache.get("animals:{}") == ({"call": 1}, True)


async def test_shared_request_still_cached_for_live_subscriber(client, fetcher, cache):
    gate = fetcher.hold(1)
    first = asyncio.create_task(client.subscribe("animals", {}, 0))
    second = asyncio.create_task(client.subscribe("animals", {}, 0))
    await wait_until(lambda: len(fetcher.calls) == 1)
    await asyncio.sleep(0)

    gate.set()
    sub_a, sub_b = await asyncio.gather(first, second)
    assert sub_a.data == sub_b.data == {"call": 1}
    assert cache.get("animals:{}")[1] is True


async def test_degraded_refresh_keeps_serving_cache(client, fetcher, pool):
    sub = await client.subscribe("animals", {}, 0)
    pool.degrade()

    await sub.refetch()
    assert sub.data == {"call": 1}
    assert sub.state is SubscriptionState.READY
    assert len(fetcher.calls) == 1


async def test_clear_cache_by_prefix(client, cache):
    cache.set("animals:{}", 1)
    cache.set('animals:{"species":"cattle"}', 2)
    cache.set("tasks:{}", 3)

    assert client.clear_cache("animals") == 2
    assert [e.key for e in client.get_cache_info().entries] == ["tasks:{}"]


async def test_clear_cache_single_entry(client, cache):
    cache.set(make_cache_key("animals", {"species": "cattle"}), 1)
    cache.set(make_cache_key("animals", {}), 2)

    assert client.clear_cache("animals", {"species": "cattle"}) == 1
    assert client.get_cache_info().total_entries == 1


async def test_clear_entire_cache(client, cache):
    cache.set("animals:{}", 1)
    cache.set("tasks:{}", 2)

    assert client.clear_cache() == 2
    assert client.get_cache_info().total_entries == 0


async def test_close_unsubscribes_everything(client):
    subs = [await client.subscribe("animals", {"page": i}, 10) for i in range(3)]
    client.close()

    assert client.subscriptions == set()
    assert all(s.state is SubscriptionState.CLOSED for s in subs)
    assert not any(s.timer_running for s in subs)


async def test_snapshot(client):
    sub = await client.subscribe("animals", {}, 0)
    snap = sub.snapshot().to_dict()
    assert snap["cache_key"] == "animals:{}"
    assert snap["state"] == "ready"
    assert snap["data"] == {"call": 1}

"""Tests for query observers and lazy queries."""

import asyncio

import pytest

from querykit import (
    LazyQuery,
    Observer,
    QueryClient,
    QueryOptions,
    QueryStatus,
    RefetchOnMount,
)


class Counter:
    """A fetch function that counts its calls."""

    def __init__(self, value: object = "fresh") -> None:
        self.calls = 0
        self.value = value

    async def __call__(self) -> object:
        self.calls += 1
        return self.value


class TestMountPolicy:
    """What initialize() does depending on refetch_on_mount."""

    async def test_first_mount_fetches(self, client: QueryClient) -> None:
        fetch = Counter()
        observer = Observer(["todos"], fetch, client=client)
        await observer.initialize()
        assert fetch.calls == 1
        assert observer.state.data == "fresh"

    async def test_never_still_loads_missing_data(self, client: QueryClient) -> None:
        fetch = Counter()
        observer = Observer(
            ["todos"],
            fetch,
            client=client,
            options=QueryOptions(refetch_on_mount=RefetchOnMount.NEVER),
        )
        await observer.initialize()
        assert fetch.calls == 1

    async def test_always_refetches_existing_data(self, client: QueryClient) -> None:
        client.set_query_data(["todos"], "cached")
        fetch = Counter()
        observer = Observer(
            ["todos"],
            fetch,
            client=client,
            options=QueryOptions(
                refetch_on_mount=RefetchOnMount.ALWAYS, stale_duration="1h"
            ),
        )
        await observer.initialize()
        assert fetch.calls == 1
        assert observer.state.data == "fresh"

    async def test_if_stale_skips_fresh_data(self, client: QueryClient) -> None:
        client.set_query_data(["todos"], "cached")
        fetch = Counter()
        observer = Observer(
            ["todos"],
            fetch,
            client=client,
            options=QueryOptions(
                refetch_on_mount=RefetchOnMount.IF_STALE, stale_duration="1h"
            ),
        )
        await observer.initialize()
        assert fetch.calls == 0
        assert observer.state.data == "cached"
        assert not observer.result.is_stale

    async def test_if_stale_refetches_stale_data(self, client: QueryClient) -> None:
        client.set_query_data(["todos"], "cached")
        await asyncio.sleep(0.01)
        fetch = Counter()
        observer = Observer(
            ["todos"],
            fetch,
            client=client,
            options=QueryOptions(
                refetch_on_mount=RefetchOnMount.IF_STALE, stale_duration=1
            ),
        )
        await observer.initialize()
        assert fetch.calls == 1

    async def test_if_stale_refetches_invalidated_data(
        self, client: QueryClient
    ) -> None:
        client.set_query_data(["todos"], "cached")
        await client.invalidate_queries(["todos"])
        fetch = Counter()
        observer = Observer(
            ["todos"],
            fetch,
            client=client,
            options=QueryOptions(
                refetch_on_mount=RefetchOnMount.IF_STALE, stale_duration="1h"
            ),
        )
        await observer.initialize()
        assert fetch.calls == 1

    async def test_never_keeps_existing_data(self, client: QueryClient) -> None:
        client.set_query_data(["todos"], "cached")
        await asyncio.sleep(0.01)
        fetch = Counter()
        observer = Observer(
            ["todos"],
            fetch,
            client=client,
            options=QueryOptions(
                refetch_on_mount=RefetchOnMount.NEVER, stale_duration=0
            ),
        )
        await observer.initialize()
        assert fetch.calls == 0
        assert observer.result.is_stale

        await observer.refetch()
        assert fetch.calls == 1


class TestEnabledAndOptions:
    """Tests for disabled observers and update_options."""

    async def test_disabled_observer_does_not_fetch(self, client: QueryClient) -> None:
        fetch = Counter()
        observer = Observer(
            ["todos"], fetch, client=client, options=QueryOptions(enabled=False)
        )
        await observer.initialize()
        assert fetch.calls == 0
        assert observer.state.is_loading

    async def test_enabling_mounts(self, client: QueryClient) -> None:
        fetch = Counter()
        observer = Observer(
            ["todos"], fetch, client=client, options=QueryOptions(enabled=False)
        )
        await observer.initialize()
        await observer.update_options(QueryOptions(enabled=True))
        assert fetch.calls == 1
        assert observer.state.is_success

    async def test_update_keeps_in_flight_fetch(self, client: QueryClient) -> None:
        release = asyncio.Event()
        calls = 0

        async def fetch() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            return "done"

        observer = Observer(["todos"], fetch, client=client)
        task = asyncio.create_task(observer.initialize())
        await asyncio.sleep(0)
        await observer.update_options(
            QueryOptions(stale_duration="1m", cache_duration="10m")
        )
        assert observer.state.is_fetching
        assert observer.query.cache_duration == 600_000

        release.set()
        await task
        assert calls == 1
        assert observer.state.data == "done"

    async def test_disabled_observer_can_still_refetch(
        self, client: QueryClient
    ) -> None:
        fetch = Counter()
        observer = Observer(
            ["todos"], fetch, client=client, options=QueryOptions(enabled=False)
        )
        await observer.refetch()
        assert fetch.calls == 1


class TestLifecycle:
    """Tests for registration, notifications, teardown and rebinding."""

    async def test_registers_with_query(self, client: QueryClient) -> None:
        first = Observer(["todos"], Counter(), client=client)
        second = Observer(["todos"], Counter(), client=client)
        assert first.query is second.query
        assert first.query.observer_count == 2

    async def test_destroy_releases_but_keeps_query(self, client: QueryClient) -> None:
        observer = Observer(["todos"], Counter(), client=client)
        await observer.initialize()
        query = observer.query
        observer.destroy()
        observer.destroy()  # idempotent

        assert query.observer_count == 0
        assert ["todos"] in client.query_cache
        assert query.gc_scheduled
        assert observer.is_destroyed

    async def test_republishes_state_changes(self, client: QueryClient, settle) -> None:
        observer = Observer(["todos"], Counter(), client=client)
        seen: list[QueryStatus] = []
        observer.subscribe(lambda: seen.append(observer.state.status))

        await observer.initialize()
        await settle()
        assert seen
        assert seen[-1] is QueryStatus.SUCCESS

    async def test_notifications_are_coalesced(
        self, client: QueryClient, settle
    ) -> None:
        observer = Observer(["todos"], Counter(), client=client)
        calls = 0

        def listener() -> None:
            nonlocal calls
            calls += 1

        observer.subscribe(listener)
        observer.query.invalidate()
        observer.query.invalidate()
        observer.query.invalidate()
        await settle()
        assert calls == 1

    async def test_destroyed_observer_stops_publishing(
        self, client: QueryClient, settle
    ) -> None:
        observer = Observer(["todos"], Counter(), client=client)
        calls = 0

        def listener() -> None:
            nonlocal calls
            calls += 1

        observer.subscribe(listener)
        query = observer.query
        observer.destroy()
        query.invalidate()
        await settle()
        assert calls == 0

    async def test_rebinds_after_external_removal(
        self, client: QueryClient, settle
    ) -> None:
        fetch = Counter()
        observer = Observer(["todos"], fetch, client=client)
        await observer.initialize()
        old = observer.query

        await client.remove_queries(["todos"])
        await settle()

        assert observer.query is not old
        assert client.query_cache.get(["todos"]) is observer.query
        assert not observer.options.enabled
        assert observer.state.is_loading
        assert observer.query.observer_count == 1
        assert old.observer_count == 0
        assert fetch.calls == 1

    async def test_rebind_detected_on_access(self, client: QueryClient) -> None:
        observer = Observer(["todos"], Counter(), client=client)
        old = observer.query
        await client.query_cache.remove(old)
        assert observer.query is not old

    async def test_async_context_manager(self, client: QueryClient) -> None:
        fetch = Counter()
        async with Observer(["todos"], fetch, client=client) as observer:
            assert observer.state.data == "fresh"
            query = observer.query
        assert observer.is_destroyed
        assert query.observer_count == 0

    async def test_result_snapshot(self, client: QueryClient) -> None:
        fetch = Counter(value=[1, 2])
        observer = Observer(["todos"], fetch, client=client)
        await observer.initialize()
        result = observer.result

        assert result.data == [1, 2]
        assert result.is_success
        assert result.has_data
        assert result.status is QueryStatus.SUCCESS
        assert not result.is_fetching
        assert result.data_updated_at is not None

        await result.refetch()
        assert fetch.calls == 2
        with pytest.raises(AttributeError):
            result.data = None  # type: ignore[misc]


class TestLazyQuery:
    """Lazy queries wait for execute()."""

    async def test_idle_until_executed(self, client: QueryClient) -> None:
        fetch = Counter(value="posts")
        lazy = LazyQuery(["posts"], fetch, client=client)
        await lazy.initialize()

        result = lazy.result
        assert not result.called
        assert result.status is QueryStatus.LOADING
        assert fetch.calls == 0

        await result.execute()
        result = lazy.result
        assert result.called
        assert result.status is QueryStatus.SUCCESS
        assert result.data == "posts"
        assert fetch.calls == 1

    async def test_matches_eager_query(self, client: QueryClient) -> None:
        lazy = LazyQuery(["lazy"], Counter(value=42), client=client)
        eager = Observer(
            ["eager"],
            Counter(value=42),
            client=client,
            options=QueryOptions(enabled=True),
        )
        await eager.initialize()
        await lazy.execute()

        assert lazy.result.data == eager.result.data
        assert lazy.result.status is eager.result.status
        assert lazy.result.is_success and eager.result.is_success

    async def test_execute_again_refetches(self, client: QueryClient) -> None:
        fetch = Counter()
        lazy = LazyQuery(["posts"], fetch, client=client)
        await lazy.execute()
        await lazy.execute()
        assert fetch.calls == 2

    async def test_reads_cached_data_before_execute(self, client: QueryClient) -> None:
        client.set_query_data(["posts"], "cached")
        fetch = Counter()
        lazy = LazyQuery(["posts"], fetch, client=client)
        assert lazy.result.data == "cached"
        assert fetch.calls == 0
        lazy.destroy()
        assert lazy.observer.is_destroyed

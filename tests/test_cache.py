import pytest

from app.models.enums import EntityType
from app.reporting.cache import CacheEntry, CachePolicy, MemoryCacheStore, ReportCache
from app.reporting.tags import (
    CacheTag,
    ENTITY_TAGS,
    entity_for_table,
    invalidate_entity,
    tags_for_entity,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Counter:
    def __init__(self, value="v"):
        self.calls = 0
        self.value = value

    def __call__(self):
        self.calls += 1
        return f"{self.value}{self.calls}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ReportCache(MemoryCacheStore(), clock=clock)


@pytest.mark.asyncio
async def test_memoizes_until_revalidated(cache):
    compute = Counter()
    assert await cache.get_or_compute("k", ["tickets"], CachePolicy.INDEFINITE, compute) == "v1"
    assert await cache.get_or_compute("k", ["tickets"], CachePolicy.INDEFINITE, compute) == "v1"
    assert compute.calls == 1
    assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1}

    assert cache.revalidate(["tickets"]) == 1
    assert await cache.get_or_compute("k", ["tickets"], CachePolicy.INDEFINITE, compute) == "v2"


@pytest.mark.asyncio
async def test_async_compute(cache):
    async def compute():
        return {"rows": []}

    assert await cache.get_or_compute("k", ["reports"], CachePolicy.INDEFINITE, compute) == {"rows": []}
    assert cache.peek("k") == {"rows": []}


@pytest.mark.asyncio
async def test_disjoint_invalidations_leave_other_entries(cache):
    await cache.get_or_compute("tickets-report", ["tickets"], CachePolicy.INDEFINITE, Counter("t"))
    await cache.get_or_compute("parts-report", ["parts"], CachePolicy.INDEFINITE, Counter("p"))

    assert cache.revalidate(["tickets"]) == 1
    assert cache.peek("tickets-report") is None
    assert cache.peek("parts-report") == "p1"

    await cache.get_or_compute("tickets-report", ["tickets"], CachePolicy.INDEFINITE, Counter("t"))
    assert cache.revalidate(["parts"]) == 1
    assert cache.peek("tickets-report") == "t1"
    assert cache.peek("parts-report") is None


@pytest.mark.asyncio
async def test_entry_under_several_tags(cache):
    await cache.get_or_compute("k", ["tickets", "work-logs"], CachePolicy.INDEFINITE, Counter())
    assert cache.revalidate(["work-logs"]) == 1
    assert cache.revalidate(["tickets"]) == 0
    assert len(cache.store) == 0


@pytest.mark.asyncio
async def test_ttl_expiry(cache, clock):
    compute = Counter()
    policy = CachePolicy.ttl(60)
    await cache.get_or_compute("logs", ["work-logs-t1"], policy, compute)
    clock.advance(59)
    assert await cache.get_or_compute("logs", ["work-logs-t1"], policy, compute) == "v1"
    clock.advance(1)
    assert cache.peek("logs") is None
    assert await cache.get_or_compute("logs", ["work-logs-t1"], policy, compute) == "v2"


@pytest.mark.asyncio
async def test_miss_sweeps_expired_entries(cache, clock):
    for day in range(10):
        await cache.get_or_compute(f"tickets:{day}", ["tickets"], CachePolicy.ttl(60), Counter())
    await cache.get_or_compute("base", ["reports"], CachePolicy.INDEFINITE, Counter())
    assert len(cache.store) == 11

    clock.advance(60)
    await cache.get_or_compute("tickets:new", ["tickets"], CachePolicy.ttl(60), Counter())
    assert sorted(key for key, _ in cache.store.items()) == ["base", "tickets:new"]
    assert cache.store.keys_for_tag("tickets") == {"tickets:new"}
    assert cache.purge_expired() == 0


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        CachePolicy.ttl(0)
    assert CachePolicy.INDEFINITE.is_indefinite


@pytest.mark.asyncio
async def test_failed_compute_is_not_stored(cache):
    def boom():
        raise RuntimeError("store down")

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("k", ["reports"], CachePolicy.INDEFINITE, boom)
    assert cache.peek("k") is None
    assert len(cache.store) == 0


def test_store_reset_replaces_tags():
    store = MemoryCacheStore()
    cache = ReportCache(store)
    store.set("k", CacheEntry(value=1, tags=frozenset({"a"})))
    store.set("k", CacheEntry(value=2, tags=frozenset({"b"})))
    assert store.keys_for_tag("a") == set()
    assert cache.revalidate(["b"]) == 1


class TestEntityRegistry:
    def test_every_entity_clears_reports(self):
        for entity in EntityType:
            assert CacheTag.REPORTS in tags_for_entity(entity)
        assert set(ENTITY_TAGS) == set(EntityType)

    def test_work_log_write_clears_ticket_lookup(self):
        tags = tags_for_entity(EntityType.WORK_LOG, ticket_id="t1")
        assert "work-logs-t1" in tags
        assert CacheTag.WORK_LOGS in tags
        assert "work-logs-t1" not in tags_for_entity(EntityType.CUSTOMER, ticket_id="t1")

    def test_ticket_write_clears_technicians(self):
        tags = tags_for_entity(EntityType.TICKET)
        assert {CacheTag.TICKETS, CacheTag.TECHNICIANS} <= set(tags)

    @pytest.mark.parametrize("table,entity", [
        ("tickets", EntityType.TICKET),
        ("machine_work_logs", EntityType.WORK_LOG),
        ("users", EntityType.USER),
        ("parts", EntityType.PART),
    ])
    def test_webhook_tables(self, table, entity):
        assert entity_for_table(table) == entity

    def test_unwatched_table(self):
        assert entity_for_table("audit_log") is None

    @pytest.mark.asyncio
    async def test_invalidate_entity(self, cache):
        await cache.get_or_compute("parts-report", [CacheTag.PARTS], CachePolicy.INDEFINITE, Counter())
        await cache.get_or_compute("customers-report", [CacheTag.CUSTOMERS], CachePolicy.INDEFINITE, Counter())
        assert invalidate_entity(cache, EntityType.PART) == 1
        assert cache.peek("customers-report") == "v1"

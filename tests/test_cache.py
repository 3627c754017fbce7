from podmanager.cache import SCOPE_CATEGORY, SCOPE_REFRESH, NodeCache
from podmanager.model import PodmanItem


def test_get_set_and_stats():
    cache = NodeCache()
    assert cache.get("containers-containers") is None
    items = [PodmanItem(label="x", context_value="container", id="1")]
    cache.set("containers-containers", items)
    assert cache.get("containers-containers") is items
    assert "containers-containers" in cache

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["sets"] == 1
    assert stats["cache_size"] == 1
    assert stats["hit_rate_percent"] == 50.0


def test_clear_drops_entries_and_ledgers():
    cache = NodeCache()
    cache.set("a", [])
    ledger = cache.ledger_for("a")
    ledger.register("compose-web-1")

    cache.clear()

    assert "a" not in cache
    assert "compose-web-1" not in ledger
    assert cache.ledger_for("a") is not ledger
    assert cache.get_stats()["clears"] == 1


def test_refresh_scope_shares_one_ledger():
    cache = NodeCache(SCOPE_REFRESH)
    assert cache.ledger_for("containers-containers") is cache.ledger_for("pods-pods")


def test_category_scope_has_ledger_per_key():
    cache = NodeCache(SCOPE_CATEGORY)
    first = cache.ledger_for("containers-containers")
    assert first is cache.ledger_for("containers-containers")
    assert first is not cache.ledger_for("pods-pods")


def test_unknown_scope_falls_back_to_refresh():
    assert NodeCache("sometimes").dedup_scope == SCOPE_REFRESH


def test_set_rejects_result_from_before_clear():
    cache = NodeCache()
    generation = cache.generation
    cache.clear()
    assert cache.set("containers-containers", [], generation) is False
    assert "containers-containers" not in cache
    assert cache.get_stats()["stale_sets"] == 1
    assert cache.set("containers-containers", [], cache.generation) is True


def test_inflight_is_forgotten_on_clear():
    cache = NodeCache()
    marker = object()
    cache.track("pods-pods", cache.generation, marker)
    assert cache.inflight("pods-pods") is marker

    cache.clear()
    assert cache.inflight("pods-pods") is None


def test_untrack_only_removes_matching_fetch():
    cache = NodeCache()
    first, second = object(), object()
    cache.track("pods-pods", cache.generation, first)
    cache.track("pods-pods", cache.generation, second)
    cache.untrack("pods-pods", first)
    assert cache.inflight("pods-pods") is second
    cache.untrack("pods-pods", second)
    assert cache.inflight("pods-pods") is None

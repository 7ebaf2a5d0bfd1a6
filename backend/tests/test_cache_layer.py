import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.cache_layer import CacheLayer, DataClass  # noqa: E402
from conftest import FakeClock  # noqa: E402


def test_get_returns_same_object_within_ttl():
    clock = FakeClock()
    cache = CacheLayer(clock=clock)
    payload = {"price": 1.5}
    cache.set("mint", payload, DataClass.MARKET_DATA)

    clock.advance(29.9)
    assert cache.get("mint", DataClass.MARKET_DATA) is payload
    assert cache.hits == 1
    assert cache.misses == 0


def test_entry_expires_at_ttl_and_is_kept_as_stale_copy():
    clock = FakeClock()
    cache = CacheLayer(clock=clock)
    cache.set("mint", "old", DataClass.MARKET_DATA)

    clock.advance(30.0)
    assert cache.get("mint", DataClass.MARKET_DATA) is None
    assert cache.misses == 1
    assert cache.evictions == 1
    assert cache.size == 0

    lookup = cache.get_stale("mint", DataClass.MARKET_DATA)
    assert lookup is not None
    assert lookup.payload == "old"
    assert lookup.stale is True
    assert lookup.age_seconds == 30.0
    assert cache.stale_served == 1


def test_data_classes_have_separate_keys_and_lifetimes():
    clock = FakeClock()
    cache = CacheLayer(clock=clock)
    cache.set("addr", "balance", DataClass.WALLET_BALANCE)
    cache.set("addr", "snapshot", DataClass.POSITIONS)

    clock.advance(16)
    assert cache.get("addr", DataClass.WALLET_BALANCE) is None
    assert cache.get("addr", DataClass.POSITIONS) == "snapshot"


def test_set_replaces_entry_and_drops_stale_copy():
    clock = FakeClock()
    cache = CacheLayer(clock=clock)
    cache.set("mint", "v1", DataClass.PNL)
    clock.advance(11)
    assert cache.get("mint", DataClass.PNL) is None

    cache.set("mint", "v2", DataClass.PNL)
    assert cache.get("mint", DataClass.PNL) == "v2"
    assert cache.stats()["expired_retained"] == 0


def test_pnl_set_drops_expired_entries_under_other_keys():
    clock = FakeClock()
    cache = CacheLayer(clock=clock)
    cache.set("mint:on_chain:970:0:0.1:0", "old", DataClass.PNL)
    cache.set("mint:on_chain:970:0:0.2:0", "older", DataClass.PNL)
    assert cache.get("mint:on_chain:970:0:0.2:0", DataClass.PNL) == "older"
    cache.set("mint", "quote", DataClass.MARKET_DATA)

    clock.advance(11)
    assert cache.get("mint:on_chain:970:0:0.2:0", DataClass.PNL) is None
    assert cache.stats()["expired_retained"] == 1
    evictions = cache.evictions

    cache.set("mint:on_chain:970:0:0.3:0", "new", DataClass.PNL)

    stats = cache.stats()
    assert stats["size"] == 2
    assert stats["expired_retained"] == 0
    assert cache.evictions == evictions + 1
    assert cache.get("mint", DataClass.MARKET_DATA) == "quote"


def test_invalidate_by_substring_and_all():
    cache = CacheLayer(clock=FakeClock())
    cache.set("mintA", 1, DataClass.MARKET_DATA)
    cache.set("mintB", 2, DataClass.MARKET_DATA)
    cache.set("wallet1", 3, DataClass.WALLET_BALANCE)

    assert cache.invalidate("mintA") == 1
    assert cache.get("mintA", DataClass.MARKET_DATA) is None
    assert cache.get("mintB", DataClass.MARKET_DATA) == 2

    assert cache.invalidate("wallet_balance:") == 1
    assert cache.invalidate() == 1
    assert cache.size == 0


def test_get_stale_on_unknown_key_returns_none():
    cache = CacheLayer(clock=FakeClock())
    assert cache.get_stale("missing", DataClass.TOKEN_INFO) is None
    assert cache.stale_served == 0


def test_custom_ttls_override_defaults():
    clock = FakeClock()
    cache = CacheLayer(ttls={DataClass.MARKET_DATA: 5.0}, clock=clock)
    cache.set("mint", "x", DataClass.MARKET_DATA)
    clock.advance(5.0)
    assert cache.get("mint", DataClass.MARKET_DATA) is None
    assert cache.ttl(DataClass.WALLET_BALANCE) == 15.0

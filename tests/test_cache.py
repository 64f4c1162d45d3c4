from fleettrips.utils.cache import TtlCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_value_until_expiry() -> None:
    clock = FakeClock()
    cache = TtlCache(10, clock=clock)
    cache.set("k", [1, 2])

    clock.now = 10
    assert cache.get("k") == [1, 2]
    clock.now = 10.5
    assert cache.get("k") is None


def test_set_refreshes_expiry() -> None:
    clock = FakeClock()
    cache = TtlCache(5, clock=clock)
    cache.set("k", "a")
    clock.now = 4
    cache.set("k", "b")
    clock.now = 8
    assert cache.get("k") == "b"


def test_missing_key_and_clear() -> None:
    cache = TtlCache(60)
    assert cache.get(("x", 1)) is None
    cache.set(("x", 1), "v")
    assert cache.get(("x", 1)) == "v"
    cache.clear()
    assert cache.get(("x", 1)) is None


def test_set_sweeps_expired_entries() -> None:
    clock = FakeClock()
    cache = TtlCache(5, clock=clock)
    for i in range(10):
        cache.set(i, i)
    assert len(cache) == 10

    clock.now = 6
    cache.set("fresh", 1)
    assert len(cache) == 1
    assert cache.get("fresh") == 1

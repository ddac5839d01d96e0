from clscraper.cache import ResponseCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_get_returns_stored_value_within_ttl():
    clock = FakeClock()
    cache = ResponseCache(ttl_seconds=60, clock=clock)
    cache.set("https://a", "GET", "body")
    clock.now = 59.9
    assert cache.get("https://a") == "body"
    assert cache.get("https://a", "get") == "body"
    assert cache.get("https://a", "HEAD") is None


def test_expiry_is_lazy():
    clock = FakeClock()
    cache = ResponseCache(ttl_seconds=60, clock=clock)
    cache.set("https://a", "GET", "body")
    clock.now = 60
    # Still present until someone looks it up
    assert len(cache) == 1
    assert cache.get("https://a") is None
    assert len(cache) == 0


def test_overwrite_refreshes_timestamp():
    clock = FakeClock()
    cache = ResponseCache(ttl_seconds=10, clock=clock)
    cache.set("https://a", "GET", "old")
    clock.now = 8
    cache.set("https://a", "GET", "new")
    clock.now = 15
    assert cache.get("https://a") == "new"


def test_capacity_drops_oldest_insertion():
    cache = ResponseCache(ttl_seconds=60, max_entries=2, clock=FakeClock())
    cache.set("https://a", "GET", 1)
    cache.set("https://b", "GET", 2)
    cache.set("https://c", "GET", 3)
    assert len(cache) == 2
    assert cache.get("https://a") is None
    assert cache.get("https://c") == 3


def test_clear():
    cache = ResponseCache()
    cache.set("https://a", "GET", 1)
    cache.clear()
    assert len(cache) == 0

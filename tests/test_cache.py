"""View cache expiry and scoped invalidation."""

from services.cache import ViewCache, invalidate_on_commit, view_cache


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    timer = FakeTimer()
    cache = ViewCache(ttl=10, timer=timer)
    cache.put("streak_info", ("a",), "cached")

    timer.now = 9.9
    assert cache.get("streak_info", ("a",)) == "cached"
    timer.now = 10
    assert cache.get("streak_info", ("a",)) is None


def test_invalidate_by_prefix():
    cache = ViewCache(ttl=60)
    cache.put("daily_standings", ("2025-01-01", 50), 1)
    cache.put("daily_standings", ("2025-01-01", 10), 2)
    cache.put("daily_standings", ("2025-01-02", 50), 3)

    assert cache.invalidate("daily_standings", "2025-01-01") == 2
    assert cache.get("daily_standings", ("2025-01-02", 50)) == 3
    assert cache.invalidate("daily_standings") == 1
    assert cache.invalidate("unknown") == 0


def test_get_or_compute_only_computes_on_miss():
    cache = ViewCache(ttl=60)
    calls = []

    def compute():
        calls.append(1)
        return ["row"]

    assert cache.get_or_compute("account_badges", ("a",), compute) == ["row"]
    assert cache.get_or_compute("account_badges", ("a",), compute) == ["row"]
    assert len(calls) == 1


def test_invalidation_waits_for_commit(db, make_account):
    account = make_account()
    view_cache.put("streak_info", (account.id,), "stale")

    db.query(type(account)).first()
    invalidate_on_commit(db, "streak_info", account.id)
    assert view_cache.get("streak_info", (account.id,)) == "stale"

    db.rollback()
    assert view_cache.get("streak_info", (account.id,)) == "stale"

    db.query(type(account)).first()
    invalidate_on_commit(db, "streak_info", account.id)
    db.commit()
    assert view_cache.get("streak_info", (account.id,)) is None

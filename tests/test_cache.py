from gymscore.cache import QueryCache


def test_loader_runs_once_until_invalidated():
    c = QueryCache()
    calls = []

    def load():
        calls.append(1)
        return len(calls)

    assert c.get_or_load(("routines", 1), load) == 1
    assert c.get_or_load(("routines", 1), load) == 1
    assert c.invalidate("routines", 1) == 1
    assert c.get_or_load(("routines", 1), load) == 2


def test_prefix_invalidation():
    c = QueryCache()
    c.get_or_load(("routines", 1), lambda: "a")
    c.get_or_load(("routines", 2), lambda: "b")
    c.get_or_load(("athletes",), lambda: "c")

    assert c.invalidate("routines") == 2
    assert ("routines", 1) not in c
    assert ("athletes",) in c
    assert len(c) == 1


def test_none_is_cached():
    c = QueryCache()
    calls = []
    c.get_or_load(("competitions", "by_id", 9), lambda: calls.append(1))
    c.get_or_load(("competitions", "by_id", 9), lambda: calls.append(1))
    assert calls == [1]


def test_clear():
    c = QueryCache()
    c.get_or_load(("events", None), lambda: ())
    c.clear()
    assert len(c) == 0
    assert c.invalidate("events") == 0


def test_load_overlapping_a_write_is_not_stored():
    c = QueryCache()
    rows = ["old"]

    def racing_load():
        snapshot = rows[0]
        # a write commits and invalidates while this read is in flight
        rows[0] = "new"
        c.invalidate("routines", 1)
        return snapshot

    assert c.get_or_load(("routines", 1), racing_load) == "old"
    assert ("routines", 1) not in c
    assert c.get_or_load(("routines", 1), lambda: rows[0]) == "new"


def test_clear_during_load_discards_result():
    c = QueryCache()

    def load():
        c.clear()
        return "stale"

    c.get_or_load(("athletes",), load)
    assert len(c) == 0

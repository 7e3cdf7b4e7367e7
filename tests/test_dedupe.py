import threading
from datetime import datetime, timezone

import pytest

from oasis_terminal.dedupe import HistorySet, fingerprint, normalize_title
from oasis_terminal.errors import InvalidConfiguration


def test_normalize_title_strips_case_and_punctuation():
    assert normalize_title("Fed Signals Rate-Cut, as CPI Cools!") == "fedsignalsratecutascpicools"
    assert normalize_title(None) == ""
    assert normalize_title("  ") == ""


def test_fingerprint_equal_for_same_normalized_title():
    """Syndicated copies of a headline collapse to one key."""
    a = fingerprint("Bitcoin Hits $100K")
    b = fingerprint("bitcoin hits 100k")
    c = fingerprint("Bitcoin hits $100k!!")
    assert a == b == c


def test_strict_fingerprint_includes_timestamp():
    t1 = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
    t2 = datetime(2025, 1, 6, 11, 0, tzinfo=timezone.utc)
    a = fingerprint("Gold Rallies", t1, strict=True)
    assert a == fingerprint("gold rallies", t1, strict=True)
    assert a != fingerprint("Gold Rallies", t2, strict=True)
    assert len(a) == 40  # SHA1 hex length


def test_history_record_and_contains():
    h = HistorySet(max_size=3)
    assert not h.contains("a")
    h.record("a")
    assert h.contains("a")
    assert "a" in h
    assert len(h) == 1


def test_history_rerecord_is_noop():
    h = HistorySet(max_size=2)
    h.record("a")
    h.record("b")
    h.record("a")
    assert list(h) == ["a", "b"]
    assert h.size() == 2


def test_history_evicts_oldest_first():
    h = HistorySet(max_size=3)
    for fp in ["a", "b", "c", "d"]:
        h.record(fp)
    assert list(h) == ["b", "c", "d"]
    assert not h.contains("a")
    assert h.oldest() == "b"


def test_history_size_never_exceeds_max():
    h = HistorySet(max_size=50)
    for i in range(500):
        h.record(f"fp{i}")
        assert h.size() <= 50
    # the survivors are the 50 most recent, in insertion order
    assert list(h) == [f"fp{i}" for i in range(450, 500)]


@pytest.mark.parametrize("bad", [0, -1])
def test_history_rejects_non_positive_max(bad):
    with pytest.raises(InvalidConfiguration):
        HistorySet(max_size=bad)


def test_history_concurrent_records_keep_cap():
    h = HistorySet(max_size=100)
    errors = []

    def writer(prefix):
        try:
            for i in range(200):
                h.record(f"{prefix}-{i}")
        except Exception as e:  # pragma: no cover - surfaced by the assert
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert not errors
    assert h.size() == 100
    assert len(set(h)) == 100

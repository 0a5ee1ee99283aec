from __future__ import annotations

from pyumbrella.state.dedup import DuplicateFilter


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_identical_message_inside_window_is_duplicate() -> None:
    clock = _Clock()
    dedup = DuplicateFilter(5.0, clock=clock)

    assert dedup.is_duplicate("umbrella/sos", b"{}") is False
    clock.now += 4.9
    assert dedup.is_duplicate("umbrella/sos", b"{}") is True
    assert dedup.is_duplicate("umbrella/weather", b"{}") is False


def test_entry_expires_after_window() -> None:
    clock = _Clock()
    dedup = DuplicateFilter(5.0, clock=clock)

    dedup.is_duplicate("umbrella/sos", b"{}")
    clock.now += 5.1

    assert dedup.is_duplicate("umbrella/sos", b"{}") is False


def test_zero_window_disables_filter() -> None:
    dedup = DuplicateFilter(0)

    assert dedup.is_duplicate("t", b"x") is False
    assert dedup.is_duplicate("t", b"x") is False
    assert len(dedup) == 0


def test_memory_is_bounded() -> None:
    dedup = DuplicateFilter(60.0, max_entries=3, clock=_Clock())

    for index in range(10):
        dedup.is_duplicate("umbrella/gps", str(index).encode())

    assert len(dedup) == 3
    # Oldest evicted first.
    assert dedup.is_duplicate("umbrella/gps", b"0") is False
    assert dedup.is_duplicate("umbrella/gps", b"9") is True

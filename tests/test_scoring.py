import pytest

from classes import ScoreTracker, compute_accuracy, format_time, parse_time, score_key
from database import MemoryDatabase
from shared.models import CompletionReport


@pytest.mark.parametrize('seconds, expected', [
    (0, "00:00"),
    (59, "00:59"),
    (75, "01:15"),
    (600, "10:00"),
    (6000, "100:00"),
])
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


@pytest.mark.parametrize('text, expected', [
    ("00:00", 0),
    ("01:15", 75),
    ("10:00", 600),
    (" 02:05 ", 125),
])
def test_parse_time(text, expected):
    assert parse_time(text) == expected


@pytest.mark.parametrize('text', ["", "1:2:3", "ab:cd", "01:60", "-1:00", "0115", None, 75])
def test_parse_time_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_time(text)


@pytest.mark.parametrize('pairs, moves, expected', [
    (4, 4, 100),
    (4, 8, 50),
    (4, 7, 57),
    (6, 9, 67),
    (1, 8, 13),
    (4, 0, 0),
    (4, 2, 200),
])
def test_compute_accuracy(pairs, moves, expected):
    assert compute_accuracy(pairs, moves) == expected


def test_score_keys():
    assert [score_key(level) for level in (8, 12, 16)] == ["best8", "best12", "best16"]


def test_first_completion_is_a_record():
    store = MemoryDatabase()
    tracker = ScoreTracker(store)
    assert tracker.best(8) is None
    assert tracker.record(8, 75)
    assert store.get("best8") == "01:15"


def test_only_strictly_faster_times_replace_record():
    store = MemoryDatabase({"best12": "01:15"})
    tracker = ScoreTracker(store)

    assert not tracker.record(12, 75)
    assert not tracker.record(12, 90)
    assert store.get("best12") == "01:15"

    assert tracker.record(12, 74)
    assert store.get("best12") == "01:14"


def test_corrupt_record_counts_as_missing():
    store = MemoryDatabase({"best16": "not a time"})
    tracker = ScoreTracker(store)
    assert tracker.best(16) is None
    assert tracker.record(16, 300)
    assert store.get("best16") == "05:00"


def test_levels_are_tracked_separately():
    tracker = ScoreTracker(MemoryDatabase({"best8": "00:30"}))
    assert tracker.table() == {8: "00:30", 12: None, 16: None}
    assert tracker.record(16, 400)
    assert tracker.table() == {8: "00:30", 12: None, 16: "06:40"}


def solve(engine, game_round):
    positions = {}
    for index, symbol in enumerate(game_round.deck):
        positions.setdefault(symbol, []).append(index)
    for a, b in positions.values():
        engine.flip(game_round, a)
        engine.flip(game_round, b)


def test_engine_records_only_faster_rounds(engine, display, store, clock):
    first = engine.start_round(8)
    clock.advance(75)
    solve(engine, first)
    assert first.report.is_new_record
    assert store.get("best8") == "01:15"
    assert display.of("update_best_scores")[-1] == ({8: "01:15", 12: None, 16: None},)

    slower = engine.start_round(8)
    clock.advance(90)
    solve(engine, slower)
    assert not slower.report.is_new_record
    assert store.get("best8") == "01:15"
    assert display.of("update_best_scores")[-1] == ({8: "01:15", 12: None, 16: None},)

    faster = engine.restart()
    clock.advance(40.9)
    solve(engine, faster)
    assert faster.report.elapsed_seconds == 40
    assert faster.report.is_new_record
    assert store.get("best8") == "00:40"


def test_completion_report_dict_round_trip():
    report = CompletionReport(
        level=12, elapsed_seconds=75, elapsed_formatted="01:15",
        moves=9, pairs=6, accuracy=67, is_new_record=True
    )
    data = report.to_dict()
    assert data["accuracy"] == 67
    assert CompletionReport.from_dict(data) == report

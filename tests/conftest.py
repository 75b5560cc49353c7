import os
import sys
import random
import pytest

# Ensure the repository root (containing classes.py, server/, shared/) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from classes import Display, RoundEngine
from database import MemoryDatabase
from scheduler import Scheduler


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingDisplay(Display):
    """Display that remembers every notification."""

    def __init__(self):
        self.calls = []

    def render_board(self, level, card_count):
        self.calls.append(("render_board", (level, card_count)))

    def set_card_state(self, index, state):
        self.calls.append(("set_card_state", (index, state)))

    def update_move_count(self, moves):
        self.calls.append(("update_move_count", (moves,)))

    def update_matched_count(self, matched, total):
        self.calls.append(("update_matched_count", (matched, total)))

    def update_timer(self, formatted):
        self.calls.append(("update_timer", (formatted,)))

    def show_completion(self, report):
        self.calls.append(("show_completion", (report,)))

    def play_celebration(self):
        self.calls.append(("play_celebration", ()))

    def switch_screen(self, screen_id):
        self.calls.append(("switch_screen", (screen_id,)))

    def update_best_scores(self, table):
        self.calls.append(("update_best_scores", (table,)))

    def of(self, name):
        """Arguments of every call to one method, in order."""
        return [args for call, args in self.calls if call == name]

    def names(self):
        return [call for call, _ in self.calls]


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler(clock):
    return Scheduler(clock=clock)


@pytest.fixture()
def display():
    return RecordingDisplay()


@pytest.fixture()
def store():
    return MemoryDatabase()


@pytest.fixture()
def engine(display, store, scheduler):
    return RoundEngine(
        display=display,
        store=store,
        scheduler=scheduler,
        reveal_delay=1.0,
        rng=random.Random(1234)
    )


@pytest.fixture()
def flask_app(tmp_path, clock):
    from server.server import create_app

    return create_app({
        'TESTING': True,
        'DB_PATH': str(tmp_path / 'server_stats.db'),
        'REVEAL_DELAY': 1.0,
        'CLOCK': clock,
    })


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()

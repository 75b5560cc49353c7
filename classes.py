import math
import random
from enum import Enum
from typing import Dict, List, Optional

from scheduler import Scheduler
from shared.models import CompletionReport


# Card faces, in the order they are dealt into decks
SYMBOLS = ['🍎', '🍌', '🍇', '🍊', '🍓', '🍉', '🍒', '🍑', '🥝', '🥑', '🍍', '🥭']

# Supported deck sizes and their difficulty labels
LEVELS = {8: "easy", 12: "normal", 16: "hard"}

START_SCREEN = "start"
GAME_SCREEN = "game"
CLEAR_SCREEN = "clear"

REVEAL_DELAY = 1.0  # seconds to show unmatched cards
TICK_INTERVAL = 1.0


class LevelError(ValueError):
    """Raised when a round is requested for an unsupported deck size."""


class CardState(Enum):
    FACE_DOWN = "face_down"
    FACE_UP = "face_up"
    MATCHED = "matched"


class FlipOutcome(Enum):
    REJECTED = "rejected"
    AWAITING = "awaiting"
    PENDING = "pending"
    MATCHED = "matched"


class MatchResult(Enum):
    MATCH = "match"
    MISMATCH = "mismatch"


def validate_level(level) -> int:
    """
    Check that a deck size can be played.

    Args:
        level: Requested deck size

    Returns:
        The level as an int

    Raises:
        LevelError: If the level is not supported or needs more symbols than exist
    """
    if isinstance(level, bool) or not isinstance(level, int) or level not in LEVELS:
        raise LevelError(f"Unsupported level: {level!r}. Choose one of {sorted(LEVELS)}")
    if level // 2 > len(SYMBOLS):
        raise LevelError(f"Not enough symbols for level {level}. Need at least {level // 2} symbols.")
    return level


def build_deck(level, rng=random) -> List[str]:
    """
    Build a shuffled deck holding two of each of the first level/2 symbols.

    Args:
        level: Deck size (one of LEVELS)
        rng: Random source providing shuffle(); defaults to the random module

    Returns:
        List of symbols of length level
    """
    validate_level(level)
    selected = SYMBOLS[:level // 2]
    deck = selected + selected
    # Fisher-Yates
    rng.shuffle(deck)
    return deck


def format_time(seconds) -> str:
    """Format whole seconds as MM:SS."""
    seconds = int(seconds)
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def parse_time(text) -> int:
    """
    Convert an MM:SS string back to seconds.

    Raises:
        ValueError: If text is not in MM:SS form
    """
    if not isinstance(text, str):
        raise ValueError(f"Time must be a string, got {text!r}")
    parts = text.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid time: {text!r}")
    minutes, seconds = (int(part) for part in parts)
    if seconds >= 60:
        raise ValueError(f"Invalid time: {text!r}")
    return minutes * 60 + seconds


def compute_accuracy(pairs, moves) -> int:
    """
    Percentage of perfect play: 100 * pairs / moves, rounded half up.

    Returns 0 when no moves were made.
    """
    if moves <= 0:
        return 0
    return int(math.floor(100 * pairs / moves + 0.5))


def score_key(level) -> str:
    """Persistence key holding the best time for a level."""
    return f"best{level}"


class Card:
    """
    A class representing one position on the board.
    The symbol is fixed for the round; the state moves between face down,
    face up and matched.
    """

    def __init__(self, index, symbol):
        """
        Initialize a new card.

        Args:
            index: Position of the card in the deck
            symbol: The symbol shown when the card is face up
        """
        self.index = index
        self.symbol = symbol
        self.state = CardState.FACE_DOWN

    @property
    def is_face_up(self):
        return self.state is CardState.FACE_UP

    @property
    def is_matched(self):
        return self.state is CardState.MATCHED

    def flip(self):
        """Turn the card face up."""
        self.state = CardState.FACE_UP

    def match(self):
        """Mark the card as matched."""
        self.state = CardState.MATCHED

    def hide(self):
        """Turn the card back face down."""
        self.state = CardState.FACE_DOWN

    def __str__(self):
        """Return a string representation of the card."""
        return f"Card({self.index}, {self.state.value})"

    def __repr__(self):
        """Return a detailed string representation of the card."""
        return f"Card(index={self.index}, symbol={self.symbol!r}, state={self.state})"


class Round:
    """
    A class representing a single play-through of one deck.
    Holds the cards, the counters and the timer handles the engine owns for it.
    """

    def __init__(self, level, deck, start_time):
        """
        Initialize a new round.

        Args:
            level: Deck size
            deck: Shuffled list of symbols
            start_time: Scheduler clock time at which the round began
        """
        self.level = level
        self.deck = list(deck)
        self.cards = [Card(i, symbol) for i, symbol in enumerate(self.deck)]
        self.pending: List[int] = []
        self.moves = 0
        self.matched_pairs = 0
        self.start_time = start_time
        self.timer_handle = None
        self.reversion_handle = None
        self.completed = False
        self.abandoned = False
        self.report: Optional[CompletionReport] = None

    @property
    def pairs(self) -> int:
        return self.level // 2

    @property
    def active(self) -> bool:
        return not (self.completed or self.abandoned)

    def get_card(self, index) -> Optional[Card]:
        """
        Get the card at the given position.

        Returns:
            Card at the position or None if the index is out of range
        """
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if 0 <= index < len(self.cards):
            return self.cards[index]
        return None

    def states(self) -> List[CardState]:
        """Return the current state of every card, in deck order."""
        return [card.state for card in self.cards]

    def elapsed(self, now) -> int:
        """Whole seconds since the round started."""
        return max(0, int(math.floor(now - self.start_time)))

    def cancel_timers(self) -> None:
        """Cancel the tick cycle and any pending reversion."""
        if self.timer_handle is not None:
            self.timer_handle.cancel()
            self.timer_handle = None
        if self.reversion_handle is not None:
            self.reversion_handle.cancel()
            self.reversion_handle = None

    def __str__(self) -> str:
        """Return a string representation of the board."""
        marks = []
        for card in self.cards:
            if card.is_matched:
                marks.append("M")
            elif card.is_face_up:
                marks.append(card.symbol)
            else:
                marks.append("#")
        return " ".join(marks)


class Display:
    """
    Receives notifications from the RoundEngine.
    Hosts subclass this and override what they draw; every method is a no-op here.
    """

    def render_board(self, level, card_count):
        pass

    def set_card_state(self, index, state):
        pass

    def update_move_count(self, moves):
        pass

    def update_matched_count(self, matched, total):
        pass

    def update_timer(self, formatted):
        pass

    def show_completion(self, report):
        pass

    def play_celebration(self):
        pass

    def switch_screen(self, screen_id):
        pass

    def update_best_scores(self, table):
        pass


class ScoreTracker:
    """
    Keeps the best completion time per level in a key-value store.
    The store only needs get(key) and set(key, value).
    """

    def __init__(self, store):
        """
        Initialize the tracker.

        Args:
            store: Persistence object with get/set over string values
        """
        self.store = store

    def best(self, level) -> Optional[str]:
        """Return the stored MM:SS record for a level, or None."""
        seconds = self.best_seconds(level)
        return None if seconds is None else format_time(seconds)

    def best_seconds(self, level) -> Optional[int]:
        """Return the record for a level in seconds; unreadable values count as no record."""
        value = self.store.get(score_key(level))
        if value is None:
            return None
        try:
            return parse_time(value)
        except ValueError:
            return None

    def table(self) -> Dict[int, Optional[str]]:
        """Return the best time for every supported level."""
        return {level: self.best(level) for level in LEVELS}

    def is_record(self, level, elapsed_seconds) -> bool:
        previous = self.best_seconds(level)
        return previous is None or elapsed_seconds < previous

    def record(self, level, elapsed_seconds) -> bool:
        """
        Store elapsed_seconds as the new best if it beats the current record.

        Returns:
            True if a new record was written
        """
        if not self.is_record(level, elapsed_seconds):
            return False
        self.store.set(score_key(level), format_time(elapsed_seconds))
        return True


class RoundEngine:
    """
    Main class that orchestrates rounds of the memory card game.
    Owns the live Round, drives the display and records best times.
    """

    def __init__(self, display=None, store=None, scheduler=None,
                 reveal_delay=REVEAL_DELAY, rng=random):
        """
        Initialize the engine.

        Args:
            display: Display receiving notifications (defaults to a silent Display)
            store: Key-value store for best times (defaults to an in-memory store)
            scheduler: Scheduler used for the timer and mismatch reversion
            reveal_delay: Seconds mismatched cards stay face up
            rng: Random source used to shuffle decks
        """
        if store is None:
            from database import MemoryDatabase
            store = MemoryDatabase()

        self.display = display or Display()
        self.scores = ScoreTracker(store)
        self.scheduler = scheduler or Scheduler()
        self.reveal_delay = reveal_delay
        self.rng = rng
        self.round: Optional[Round] = None

    # Round lifecycle

    def show_start(self):
        """Show the start screen with the current records."""
        self.display.update_best_scores(self.scores.table())
        self.display.switch_screen(START_SCREEN)

    def start_round(self, level) -> Round:
        """
        Start a new round, replacing the live one.

        Raises:
            LevelError: If the level is not supported; the live round is left untouched
        """
        validate_level(level)
        deck = build_deck(level, self.rng)

        if self.round is not None:
            self.abandon(self.round)

        new_round = Round(level, deck, self.scheduler.now())
        self.round = new_round

        self.display.render_board(level, len(new_round.cards))
        self.display.update_move_count(0)
        self.display.update_matched_count(0, new_round.pairs)
        self.display.update_timer(format_time(0))
        self.display.switch_screen(GAME_SCREEN)

        new_round.timer_handle = self.scheduler.call_every(
            TICK_INTERVAL, lambda: self._tick(new_round))
        return new_round

    def restart(self) -> Optional[Round]:
        """Play the current level again."""
        if self.round is None:
            return None
        return self.start_round(self.round.level)

    def abandon(self, round=None) -> None:
        """Stop a round without producing a completion report."""
        round = round or self.round
        if round is None:
            return
        round.cancel_timers()
        if not round.completed:
            round.abandoned = True

    def back_to_start(self) -> None:
        """Leave the live round and return to the start screen."""
        self.abandon()
        self.show_start()

    def _tick(self, round):
        if round is not self.round or not round.active:
            return
        self.display.update_timer(format_time(round.elapsed(self.scheduler.now())))

    # Player input

    def flip(self, round, index) -> FlipOutcome:
        """
        Turn a card face up.

        Flips are rejected while two cards are pending, for cards already face up
        or matched, for out-of-range indexes and for rounds that are not live.

        Returns:
            AWAITING after the first card of a pair, MATCHED or PENDING after the second
        """
        if round is None or round is not self.round or not round.active:
            return FlipOutcome.REJECTED
        if len(round.pending) >= 2:
            return FlipOutcome.REJECTED

        card = round.get_card(index)
        if card is None or card.is_face_up or card.is_matched:
            return FlipOutcome.REJECTED

        card.flip()
        round.pending.append(card.index)
        self.display.set_card_state(card.index, card.state)

        if len(round.pending) < 2:
            return FlipOutcome.AWAITING

        round.moves += 1
        self.display.update_move_count(round.moves)

        first, second = round.pending
        if self.evaluate(round, first, second) is MatchResult.MATCH:
            return FlipOutcome.MATCHED
        return FlipOutcome.PENDING

    def evaluate(self, round, index_a, index_b) -> MatchResult:
        """
        Resolve two face-up cards.

        A match is applied at once and may complete the round; a mismatch
        schedules the cards to turn back after reveal_delay seconds.
        """
        card_a = round.cards[index_a]
        card_b = round.cards[index_b]

        if card_a.symbol == card_b.symbol:
            card_a.match()
            card_b.match()
            self.display.set_card_state(card_a.index, card_a.state)
            self.display.set_card_state(card_b.index, card_b.state)

            round.matched_pairs += 1
            round.pending = []
            self.display.update_matched_count(round.matched_pairs, round.pairs)

            if round.matched_pairs == round.pairs:
                self._complete(round)
            return MatchResult.MATCH

        round.reversion_handle = self.scheduler.call_later(
            self.reveal_delay, lambda: self._revert(round, index_a, index_b))
        return MatchResult.MISMATCH

    def _revert(self, round, index_a, index_b):
        round.reversion_handle = None
        if round is not self.round or not round.active:
            return
        for index in (index_a, index_b):
            card = round.cards[index]
            if card.is_face_up:
                card.hide()
                self.display.set_card_state(index, card.state)
        round.pending = []

    def _complete(self, round) -> CompletionReport:
        if round.report is not None:
            return round.report

        round.cancel_timers()
        round.completed = True

        elapsed = round.elapsed(self.scheduler.now())
        is_new_record = self.scores.record(round.level, elapsed)

        report = CompletionReport(
            level=round.level,
            elapsed_seconds=elapsed,
            elapsed_formatted=format_time(elapsed),
            moves=round.moves,
            pairs=round.pairs,
            accuracy=compute_accuracy(round.pairs, round.moves),
            is_new_record=is_new_record
        )
        round.report = report

        self.display.update_timer(report.elapsed_formatted)
        self.display.show_completion(report)
        self.display.play_celebration()
        self.display.update_best_scores(self.scores.table())
        self.display.switch_screen(CLEAR_SCREEN)
        return report

    def __str__(self):
        """Return a string representation of the engine state."""
        if self.round is None:
            return "No round"
        status = "Complete" if self.round.completed else "Abandoned" if self.round.abandoned else "Active"
        return (f"Level {self.round.level} ({LEVELS[self.round.level]}): {status}, "
                f"Moves={self.round.moves}, Pairs={self.round.matched_pairs}/{self.round.pairs}\n"
                f"{self.round}")

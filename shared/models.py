"""
Shared data models for the game engine, the browser server and the sync store.
This ensures consistency in data structures across components.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class CompletionReport:
    """Snapshot of a finished round."""
    level: int
    elapsed_seconds: int
    elapsed_formatted: str
    moves: int
    pairs: int
    accuracy: int
    is_new_record: bool

    @classmethod
    def from_dict(cls, data):
        """Create a CompletionReport object from a dictionary."""
        return cls(
            level=int(data.get('level', 0)),
            elapsed_seconds=int(data.get('elapsed_seconds', 0)),
            elapsed_formatted=data.get('elapsed_formatted', '00:00'),
            moves=int(data.get('moves', 0)),
            pairs=int(data.get('pairs', 0)),
            accuracy=int(data.get('accuracy', 0)),
            is_new_record=bool(data.get('is_new_record', False))
        )

    def to_dict(self):
        """Convert the CompletionReport object to a dictionary."""
        return {
            'level': self.level,
            'elapsed_seconds': self.elapsed_seconds,
            'elapsed_formatted': self.elapsed_formatted,
            'moves': self.moves,
            'pairs': self.pairs,
            'accuracy': self.accuracy,
            'is_new_record': self.is_new_record
        }

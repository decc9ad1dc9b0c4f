from updown_node.db.tables.game import GameRow, PredictionRow
from updown_node.db.tables.scoring import (
    AirdropRow, RankingCursorRow, RankingRow, ScoreEntryRow,
)

__all__ = [
    "GameRow", "PredictionRow",
    "ScoreEntryRow", "RankingRow", "RankingCursorRow", "AirdropRow",
]

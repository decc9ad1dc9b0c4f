from updown_node.entities.game import (
    Game, GameStatus, Prediction, PredictionDirection, PredictionStatus,
)
from updown_node.entities.ranking import (
    AirdropRecord, AirdropStatus, RankingCursor, RankingPeriod, RankingRecord, period_key, period_start,
)
from updown_node.entities.score import ScoreEntry, ScoreStatus, ScoreType

__all__ = [
    "Game", "GameStatus", "Prediction", "PredictionDirection", "PredictionStatus",
    "ScoreEntry", "ScoreStatus", "ScoreType",
    "RankingRecord", "RankingPeriod", "RankingCursor", "period_key", "period_start",
    "AirdropRecord", "AirdropStatus",
]

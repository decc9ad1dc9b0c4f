from updown_node.interfaces.airdrop_repository import AirdropRepository
from updown_node.interfaces.game_repository import GameRepository
from updown_node.interfaces.prediction_repository import PredictionRepository
from updown_node.interfaces.ranking_repository import RankingRepository
from updown_node.interfaces.score_repository import ScoreRepository

__all__ = [
    "GameRepository", "PredictionRepository", "ScoreRepository",
    "RankingRepository", "AirdropRepository",
]

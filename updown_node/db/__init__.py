from .repositories import (
    DBAirdropRepository, DBGameRepository, DBPredictionRepository,
    DBRankingRepository, DBScoreRepository,
)
from .session import engine, create_db_engine, create_session, database_url

"""Typed failures surfaced by the game engine.

Every error carries a short ``reason`` string so callers outside the engine
can map failures without parsing messages.
"""
from __future__ import annotations


class GameEngineError(Exception):
    reason = "engine_error"


class NotFound(GameEngineError):
    reason = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier!r} not found")
        self.kind = kind
        self.identifier = identifier


class PriceUnavailable(GameEngineError, ValueError):
    """Raised when the price feed cannot return a sample for a symbol.

    Recoverable: the operation is deferred to the next scheduling cycle.
    """

    reason = "price_unavailable"

    def __init__(self, symbol: str, detail: str | None = None):
        message = f"no price available for {symbol}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.symbol = symbol


class InvalidGameState(GameEngineError):
    reason = "invalid_game_state"


class DuplicatePrediction(GameEngineError):
    reason = "duplicate_prediction"


class PermissionDenied(GameEngineError):
    reason = "permission_denied"


class PayoutError(GameEngineError):
    """Transport or chain failure while sending an airdrop."""

    reason = "payout_failed"

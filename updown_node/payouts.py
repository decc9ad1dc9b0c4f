"""Payout transports used by the airdrop distributor."""
from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod

import requests

from updown_node.errors import PayoutError

logger = logging.getLogger(__name__)


class PayoutClient(ABC):

    @abstractmethod
    def send_airdrop(self, user_id: str, amount: float) -> str:
        """Send ``amount`` to ``user_id`` and return the transaction hash.

        Raises ``PayoutError`` on transport or chain failure.
        """
        raise NotImplementedError


class HttpPayoutClient(PayoutClient):
    """POSTs payouts to a signing gateway that owns the treasury key."""

    def __init__(self, base_url: str, timeout_seconds: float = 30.0, session: requests.Session | None = None):
        if not base_url:
            raise ValueError("payout gateway url cannot be empty")
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def send_airdrop(self, user_id: str, amount: float) -> str:
        try:
            response = self.session.post(
                f"{self.base_url}/airdrops",
                json={"user_id": user_id, "amount": amount},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            tx_hash = response.json()["transaction_hash"]
        except requests.RequestException as exc:
            raise PayoutError(f"payout to {user_id} failed: {exc}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise PayoutError(f"payout gateway returned an invalid response for {user_id}: {exc}") from exc

        if not tx_hash:
            raise PayoutError(f"payout gateway returned no transaction hash for {user_id}")
        return str(tx_hash)


class SimulatedPayoutClient(PayoutClient):
    """Returns a random transaction hash without moving funds."""

    def send_airdrop(self, user_id: str, amount: float) -> str:
        tx_hash = "0x" + secrets.token_hex(32)
        logger.info("Simulated airdrop of %s to %s (tx=%s)", amount, user_id, tx_hash[:18])
        return tx_hash

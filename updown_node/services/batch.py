from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class BatchResult:
    """Outcome counts of a batch that keeps going past per-item failures."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    deferred: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def record_failure(self, item_id: str, error: BaseException) -> None:
        self.failed += 1
        self.failures.append({"id": item_id, "error": str(error), "deferred": False})

    def record_deferred(self, item_id: str, error: BaseException) -> None:
        self.deferred += 1
        self.failures.append({"id": item_id, "error": str(error), "deferred": True})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

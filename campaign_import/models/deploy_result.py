from __future__ import annotations

import statistics
from dataclasses import asdict, dataclass, field
from typing import Any

from .product import ProductType

"""Deployment result models.

DeployResult is produced once per confirmed deployment. GroupStat carries the
per product type outcome including upsert timing statistics, accumulated with
UpsertStatsAccumulator.
"""

__all__ = [
    "DeployDetails",
    "ProgressDebugInfo",
    "GroupStat",
    "DeployResult",
    "UpsertStatsAccumulator",
]


@dataclass(frozen=True)
class DeployDetails:
    success_count: int
    failed_count: int
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProgressDebugInfo:
    """Trace of one submission's progress recomputation.

    status is the submission status after the update, or one of
    "skipped" / "count_error" / "submission_error" when no update happened.
    """
    submission_id: str
    content_count: int | None
    target_count: int
    progress_percentage: int
    status: str
    update_error: str | None = None


@dataclass(frozen=True)
class GroupStat:
    """Per product type deployment statistics."""
    product_type: ProductType
    attempted: int
    succeeded: int
    failed: int
    inserted: int = 0
    updated: int = 0
    committed: bool = True
    elapsed_seconds: float = 0.0
    avg_upsert_seconds: float = 0.0
    p95_upsert_seconds: float = 0.0


@dataclass(frozen=True)
class DeployResult:
    success: bool
    message: str
    details: DeployDetails | None = None
    progress_debug: list[ProgressDebugInfo] = field(default_factory=list)
    group_stats: list[GroupStat] = field(default_factory=list)
    progress_updated: int = 0
    content_items_created: int = 0
    batch_error: str | None = None

    @property
    def success_count(self) -> int:
        return self.details.success_count if self.details else 0

    @property
    def failed_count(self) -> int:
        return self.details.failed_count if self.details else 0

    @property
    def errors(self) -> list[str]:
        return list(self.details.errors) if self.details else []

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["group_stats"] = [
            {**asdict(g), "product_type": g.product_type.value} for g in self.group_stats
        ]
        return data


class UpsertStatsAccumulator:
    """Collects per-record upsert timings for a GroupStat."""

    def __init__(self) -> None:
        self.upsert_times: list[float] = []

    def add_upsert_time(self, elapsed_seconds: float) -> None:
        self.upsert_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (count, avg_seconds, p95_seconds)."""
        if not self.upsert_times:
            return (0, 0.0, 0.0)

        total = len(self.upsert_times)
        avg_seconds = statistics.mean(self.upsert_times)
        if total == 1:
            p95_seconds = self.upsert_times[0]
        else:
            p95_seconds = statistics.quantiles(
                self.upsert_times, n=20, method='inclusive'
            )[18]  # 95th percentile
        return (total, avg_seconds, p95_seconds)

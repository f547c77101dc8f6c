"""Pipeline data models for aggregation, ranking and binding selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class ModelAggregate:
    """Per-model statistics over the evaluations of one category."""

    model_id: str
    model_name: str
    mean_score: Optional[float]  # None when every test errored
    test_count: int
    error_count: int
    last_tested: datetime
    total_unit_cost: Optional[float]  # None when the model left the catalog

    @property
    def success_count(self) -> int:
        return self.test_count - self.error_count

    @property
    def is_free(self) -> bool:
        return self.total_unit_cost == 0


@dataclass
class RankedModel:
    """An aggregate placed in the ranking, with its cost relative to the baseline."""

    aggregate: ModelAggregate
    eligible: bool
    cost_multiple: Optional[float]
    is_baseline: bool = False

    @property
    def model_id(self) -> str:
        return self.aggregate.model_id


@dataclass
class Ranking:
    """Presentation-ordered ranking of a category's models."""

    threshold: float
    entries: list[RankedModel] = field(default_factory=list)
    baseline: Optional[RankedModel] = None

    @property
    def eligible(self) -> list[RankedModel]:
        return [entry for entry in self.entries if entry.eligible]

    def get(self, model_id: str) -> Optional[RankedModel]:
        return next((entry for entry in self.entries if entry.model_id == model_id), None)

"""Binding selection: rank aggregates by quality/cost and assemble fallback chains.

Ranking rules:
    eligible        mean_score >= threshold (models with no successful test never are)
    cost baseline   cheapest eligible model with a non-zero price
    cost multiple   total_unit_cost / baseline cost

Presentation order:
    1. eligible, paid, ascending cost
    2. eligible, free
    3. ineligible, paid, ascending cost
    4. ineligible, free
    5. price unknown (no longer in the catalog)
Ties break on mean score (descending), then model id.
"""

from __future__ import annotations

from typing import Optional

import pydantic
import structlog

from binding_lab.errors import BindingValidationError
from binding_lab.models import MAX_FALLBACKS, BindingConfig
from binding_lab.pipeline.models import ModelAggregate, Ranking, RankedModel

logger = structlog.get_logger(__name__)


def _is_eligible(aggregate: ModelAggregate, threshold: float) -> bool:
    return aggregate.mean_score is not None and aggregate.mean_score >= threshold


def _tiebreak(aggregate: ModelAggregate) -> tuple[float, str]:
    mean = aggregate.mean_score
    return (-mean if mean is not None else float("inf"), aggregate.model_id)


def _group(aggregate: ModelAggregate, eligible: bool) -> int:
    cost = aggregate.total_unit_cost
    if cost is None:
        return 4
    if eligible:
        return 0 if cost > 0 else 1
    return 2 if cost > 0 else 3


def rank(aggregates: list[ModelAggregate], threshold: float) -> Ranking:
    """Classify, price and order aggregates for binding selection."""
    eligibility = {a.model_id: _is_eligible(a, threshold) for a in aggregates}

    paid_eligible = [
        a
        for a in aggregates
        if eligibility[a.model_id] and a.total_unit_cost is not None and a.total_unit_cost > 0
    ]
    baseline_aggregate = (
        min(paid_eligible, key=lambda a: (a.total_unit_cost, *_tiebreak(a)))
        if paid_eligible
        else None
    )
    baseline_cost = baseline_aggregate.total_unit_cost if baseline_aggregate else None

    entries: list[RankedModel] = []
    for aggregate in aggregates:
        cost = aggregate.total_unit_cost
        multiple = cost / baseline_cost if baseline_cost and cost is not None else None
        entries.append(
            RankedModel(
                aggregate=aggregate,
                eligible=eligibility[aggregate.model_id],
                cost_multiple=multiple,
                is_baseline=aggregate is baseline_aggregate,
            )
        )

    entries.sort(
        key=lambda e: (
            _group(e.aggregate, e.eligible),
            e.aggregate.total_unit_cost or 0.0,
            *_tiebreak(e.aggregate),
        )
    )
    baseline = next((e for e in entries if e.is_baseline), None)

    logger.debug(
        "ranking_built",
        threshold=threshold,
        model_count=len(entries),
        eligible_count=sum(1 for e in entries if e.eligible),
        baseline_model_id=baseline.model_id if baseline else None,
    )
    return Ranking(threshold=threshold, entries=entries, baseline=baseline)


class BindingSelection:
    """Mutable slot assignment for one binding key.

    Slot 0 is the primary, slots 1-4 the ordered fallbacks. A model occupies
    at most one slot: assigning it elsewhere moves it.
    """

    def __init__(self, category: str, sub_level: Optional[str] = None):
        self.category = category
        self.sub_level = sub_level
        self._slots: list[Optional[str]] = [None] * (MAX_FALLBACKS + 1)

    @classmethod
    def from_config(cls, config: BindingConfig) -> "BindingSelection":
        selection = cls(config.category, config.sub_level)
        for slot, model_id in enumerate(config.chain):
            selection.assign(slot, model_id)
        return selection

    def _check_slot(self, slot: int) -> None:
        if not 0 <= slot <= MAX_FALLBACKS:
            raise BindingValidationError(
                f"Slot {slot} out of range (0 = primary, 1-{MAX_FALLBACKS} = fallbacks)"
            )

    def assign(self, slot: int, model_id: str) -> None:
        self._check_slot(slot)
        model_id = (model_id or "").strip()
        if not model_id:
            raise BindingValidationError("Model id must not be empty")
        for index, current in enumerate(self._slots):
            if current == model_id and index != slot:
                self._slots[index] = None
        self._slots[slot] = model_id

    def clear(self, slot: int) -> None:
        self._check_slot(slot)
        self._slots[slot] = None

    @property
    def slots(self) -> list[Optional[str]]:
        return list(self._slots)

    @property
    def primary(self) -> Optional[str]:
        return self._slots[0]

    @property
    def fallbacks(self) -> list[str]:
        """Assigned fallbacks in slot order, gaps removed."""
        return [model_id for model_id in self._slots[1:] if model_id]

    def to_config(
        self,
        prompt_template_id: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> BindingConfig:
        """Build the persistable binding.

        Raises:
            BindingValidationError: Without a primary, or on invalid parameters.
        """
        if not self.primary:
            raise BindingValidationError("A primary model is required")
        try:
            return BindingConfig(
                category=self.category,
                sub_level=self.sub_level,
                primary_model_id=self.primary,
                fallback_model_ids=self.fallbacks,
                prompt_template_id=prompt_template_id,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except pydantic.ValidationError as e:
            raise BindingValidationError(str(e)) from e


def auto_select(
    ranking: Ranking,
    category: str,
    sub_level: Optional[str] = None,
    max_fallbacks: int = MAX_FALLBACKS,
) -> BindingSelection:
    """Primary = cost baseline (or the first eligible model); fallbacks = next eligible models.

    Raises:
        BindingValidationError: If no model meets the threshold.
    """
    eligible = ranking.eligible
    if not eligible:
        raise BindingValidationError(
            f"No model meets the quality threshold of {ranking.threshold:g}"
        )

    primary = ranking.baseline or eligible[0]
    selection = BindingSelection(category, sub_level)
    selection.assign(0, primary.model_id)

    others = [e for e in eligible if e.model_id != primary.model_id]
    for slot, entry in enumerate(others[: min(max_fallbacks, MAX_FALLBACKS)], start=1):
        selection.assign(slot, entry.model_id)

    logger.info(
        "binding_auto_selected",
        category=category,
        sub_level=sub_level,
        primary_model_id=selection.primary,
        fallback_model_ids=selection.fallbacks,
    )
    return selection

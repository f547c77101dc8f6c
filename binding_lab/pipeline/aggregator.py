"""Aggregator: group evaluation records per model and merge live catalog pricing."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

import structlog

from binding_lab.models import EvaluationRecord, ModelDescriptor
from binding_lab.pipeline.models import ModelAggregate
from binding_lab.services.catalog import ModelCatalog
from binding_lab.services.evaluation_store import EvaluationStore

logger = structlog.get_logger(__name__)


def aggregate(
    records: Iterable[EvaluationRecord],
    catalog_models: Iterable[ModelDescriptor],
) -> list[ModelAggregate]:
    """Compute per-model statistics.

    Args:
        records: Evaluation records of one category (success and error records).
        catalog_models: Current catalog, used for pricing only.

    Returns:
        One ModelAggregate per tested model id, sorted by model id.
    """
    pricing = {model.id: model.total_unit_cost for model in catalog_models}

    grouped: dict[str, list[EvaluationRecord]] = defaultdict(list)
    for record in records:
        grouped[record.model_id].append(record)

    aggregates: list[ModelAggregate] = []
    for model_id in sorted(grouped):
        group = grouped[model_id]
        newest = max(group, key=lambda r: r.timestamp)
        scores = [r.score for r in group if not r.is_error]
        mean_score = sum(scores) / len(scores) if scores else None

        if model_id not in pricing:
            logger.debug("aggregate_model_not_in_catalog", model_id=model_id)

        aggregates.append(
            ModelAggregate(
                model_id=model_id,
                model_name=newest.model_name,
                mean_score=mean_score,
                test_count=len(group),
                error_count=len(group) - len(scores),
                last_tested=newest.timestamp,
                total_unit_cost=pricing.get(model_id),
            )
        )

    return aggregates


def language_pairs(records: Iterable[EvaluationRecord]) -> list[str]:
    """Distinct ``source>target`` pairs present in the records, sorted."""
    return sorted({record.language_pair for record in records})


async def load_aggregates(
    store: EvaluationStore,
    catalog: ModelCatalog,
    category: str,
    language_pair: Optional[str] = None,
) -> list[ModelAggregate]:
    """Query the ledger for a category and aggregate it against the catalog."""
    if not catalog.is_loaded:
        await catalog.refresh()
    records = await store.query(category, language_pair=language_pair)
    aggregates = aggregate(records, catalog.all())
    logger.info(
        "aggregates_loaded",
        category=category,
        language_pair=language_pair,
        record_count=len(records),
        model_count=len(aggregates),
    )
    return aggregates

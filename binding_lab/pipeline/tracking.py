"""MLflow experiment tracking for evaluation runs.

Tracking is optional: without ``MLFLOW_TRACKING_URI`` nothing is logged, and a
tracking failure is logged and never fails the evaluation itself.
"""

from __future__ import annotations

import json
import re
import tempfile
from pathlib import Path
from typing import Optional

import mlflow
import structlog

from binding_lab.config import LabSettings, get_settings
from binding_lab.models import language_pair
from binding_lab.runner import RunRequest, RunResult

logger = structlog.get_logger(__name__)

_METRIC_KEY_UNSAFE = re.compile(r"[^A-Za-z0-9_\-./ ]")


def metric_key(model_id: str) -> str:
    """MLflow-safe per-candidate metric name (``openai/gpt-4o:free`` -> ``score/openai/gpt-4o_free``)."""
    return f"score/{_METRIC_KEY_UNSAFE.sub('_', model_id)}"


def log_run(
    request: RunRequest,
    result: RunResult,
    settings: Optional[LabSettings] = None,
) -> Optional[str]:
    """Log a completed run as an MLflow run.

    Returns:
        The MLflow run id, or None when tracking is disabled or failed.
    """
    settings = settings or get_settings()
    if not settings.mlflow_tracking_uri:
        return None
    if result.aborted or result.baseline is None:
        return None

    try:
        mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
        mlflow.set_experiment(settings.mlflow_experiment_name)

        with mlflow.start_run(run_name=f"{request.category}-eval") as run:
            mlflow.log_params(
                {
                    "category": request.category,
                    "sub_level": request.sub_level or "",
                    "baseline_model": result.baseline.model_id,
                    "judge_model": request.judge_chain[0] if request.judge_chain else "",
                    "language_pair": language_pair(request.source_lang, request.target_lang),
                    "candidate_count": len(request.candidate_ids),
                }
            )

            metrics = {
                "success_count": result.success_count,
                "error_count": result.error_count,
                "duration_seconds": result.duration_seconds,
                "cancelled": 1 if result.cancelled else 0,
            }
            for record in result.records:
                if not record.is_error:
                    metrics[metric_key(record.model_id)] = record.score
            mlflow.log_metrics(metrics)

            with tempfile.TemporaryDirectory() as tmp_dir:
                records_path = Path(tmp_dir) / "evaluation_records.json"
                records_path.write_text(
                    json.dumps([r.to_row() for r in result.records], indent=2, ensure_ascii=False),
                    encoding="utf-8",
                )
                mlflow.log_artifact(str(records_path))

            run_id = run.info.run_id
    except Exception as e:
        logger.warning("mlflow_tracking_failed", error=str(e))
        return None

    logger.info("mlflow_run_logged", run_id=run_id, category=request.category)
    return run_id

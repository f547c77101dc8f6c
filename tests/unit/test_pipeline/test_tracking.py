"""Unit tests for MLflow run tracking."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from binding_lab.config import LabSettings
from binding_lab.models import ErrorKind
from binding_lab.pipeline.tracking import log_run, metric_key
from binding_lab.runner import BaselineResult, RunRequest, RunResult
from helpers import make_record


def _request() -> RunRequest:
    return RunRequest(
        category="translation",
        test_input="How are you doing today?",
        source_lang="English",
        target_lang="Spanish",
        task_prompt="Translate from English to Spanish.",
        baseline_chain=["google/gemini-2.0-flash-001"],
        judge_chain=["anthropic/claude-3.5-sonnet"],
        candidate_ids=["openai/gpt-4o-mini", "mistralai/mistral-7b:free"],
        credential="sk-or-test",
    )


def _result(**overrides) -> RunResult:
    values = dict(
        records=[
            make_record("openai/gpt-4o-mini", 88),
            make_record("mistralai/mistral-7b:free", error="boom", error_type=ErrorKind.API_ERROR),
        ],
        baseline=BaselineResult(
            output="¿Cómo estás hoy?",
            model_id="google/gemini-2.0-flash-001",
            model_name="Gemini 2.0 Flash",
        ),
        duration_seconds=4.5,
    )
    values.update(overrides)
    return RunResult(**values)


def _settings(uri="http://mlflow:5000") -> LabSettings:
    return LabSettings(mlflow_tracking_uri=uri, mlflow_experiment_name="test-experiment")


def _mock_mlflow(mock_mlflow: MagicMock, run_id: str = "run-123") -> None:
    mock_mlflow.start_run.return_value.__enter__.return_value.info.run_id = run_id


class TestMetricKey:
    def test_keeps_slash_and_replaces_colon(self):
        assert metric_key("mistralai/mistral-7b:free") == "score/mistralai/mistral-7b_free"


class TestLogRun:
    """Tests for log_run()."""

    @patch("binding_lab.pipeline.tracking.mlflow")
    def test_disabled_without_tracking_uri(self, mock_mlflow):
        assert log_run(_request(), _result(), _settings(uri=None)) is None
        mock_mlflow.start_run.assert_not_called()

    @patch("binding_lab.pipeline.tracking.mlflow")
    def test_aborted_run_not_logged(self, mock_mlflow):
        result = _result(records=[], baseline=None, aborted=True)
        assert log_run(_request(), result, _settings()) is None
        mock_mlflow.start_run.assert_not_called()

    @patch("binding_lab.pipeline.tracking.mlflow")
    def test_logs_params_metrics_and_records(self, mock_mlflow):
        _mock_mlflow(mock_mlflow)
        artifacts = []
        mock_mlflow.log_artifact.side_effect = lambda path: artifacts.append(
            json.loads(Path(path).read_text(encoding="utf-8"))
        )

        run_id = log_run(_request(), _result(), _settings())

        assert run_id == "run-123"
        mock_mlflow.set_tracking_uri.assert_called_once_with("http://mlflow:5000")
        mock_mlflow.set_experiment.assert_called_once_with("test-experiment")

        params = mock_mlflow.log_params.call_args[0][0]
        assert params["category"] == "translation"
        assert params["baseline_model"] == "google/gemini-2.0-flash-001"
        assert params["judge_model"] == "anthropic/claude-3.5-sonnet"
        assert params["language_pair"] == "English>Spanish"
        assert params["candidate_count"] == 2

        metrics = mock_mlflow.log_metrics.call_args[0][0]
        assert metrics["success_count"] == 1
        assert metrics["error_count"] == 1
        assert metrics["duration_seconds"] == pytest.approx(4.5)
        assert metrics["cancelled"] == 0
        assert metrics["score/openai/gpt-4o-mini"] == 88
        assert "score/mistralai/mistral-7b_free" not in metrics

        [rows] = artifacts
        assert [row["model_id"] for row in rows] == ["openai/gpt-4o-mini", "mistralai/mistral-7b:free"]
        assert rows[1]["error_type"] == "api_error"

    @patch("binding_lab.pipeline.tracking.mlflow")
    def test_cancelled_flag(self, mock_mlflow):
        _mock_mlflow(mock_mlflow)
        log_run(_request(), _result(cancelled=True), _settings())
        assert mock_mlflow.log_metrics.call_args[0][0]["cancelled"] == 1

    @patch("binding_lab.pipeline.tracking.mlflow")
    def test_tracking_failure_is_swallowed(self, mock_mlflow):
        mock_mlflow.set_experiment.side_effect = RuntimeError("server unreachable")
        assert log_run(_request(), _result(), _settings()) is None

"""Shared test doubles and builders."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from binding_lab.models import ErrorKind, EvaluationRecord, ModelDescriptor
from binding_lab.services.catalog import ModelCatalog

Reply = Union[str, Exception, Callable[[str, str], str]]


class FakeCompletionClient:
    """Scripted stand-in for OpenRouterClient.

    ``replies`` maps a model id to a reply, an exception to raise, or a
    callable ``(system_prompt, user_prompt) -> str``. A list of replies is
    consumed one per call.
    """

    def __init__(self, replies: Optional[dict] = None, default: Optional[Reply] = None):
        self.replies = dict(replies or {})
        self.default = default
        self.calls: list[dict] = []
        self.closed = False

    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        self.calls.append(
            {
                "model_id": model_id,
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        reply = self.replies.get(model_id, self.default)
        if isinstance(reply, list):
            reply = reply.pop(0)
        if reply is None:
            raise AssertionError(f"unexpected call to {model_id}")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt)
        return reply

    def called_models(self) -> list[str]:
        return [call["model_id"] for call in self.calls]

    async def close(self) -> None:
        self.closed = True


def make_model(
    model_id: str,
    name: Optional[str] = None,
    prompt_cost: float = 0.000001,
    completion_cost: float = 0.000002,
    **kwargs,
) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name or model_id.split("/")[-1].title(),
        prompt_cost_per_token=prompt_cost,
        completion_cost_per_token=completion_cost,
        **kwargs,
    )


def make_record(
    model_id: str = "openai/gpt-4o-mini",
    score: float = 90.0,
    *,
    category: str = "translation",
    error: Optional[str] = None,
    error_type: Optional[ErrorKind] = None,
    minutes_ago: int = 0,
    record_id: Optional[str] = None,
    source_lang: str = "English",
    target_lang: str = "Spanish",
) -> EvaluationRecord:
    timestamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    return EvaluationRecord(
        id=record_id or f"{model_id}-{minutes_ago}-{score}",
        timestamp=timestamp,
        category=category,
        test_input="How are you doing today?",
        source_lang=source_lang,
        target_lang=target_lang,
        baseline_model_id="google/gemini-2.0-flash-001",
        baseline_model_name="Gemini 2.0 Flash",
        baseline_output="¿Cómo estás hoy?",
        model_id=model_id,
        model_name=model_id,
        model_output="" if error else "¿Cómo te va hoy?",
        response_time_seconds=1.25,
        judge_model_id="anthropic/claude-3.5-sonnet",
        judge_model_name="Claude 3.5 Sonnet",
        score=0.0 if error else score,
        error=error,
        error_type=error_type,
    )


def loaded_catalog(models: list[ModelDescriptor]) -> ModelCatalog:
    """A catalog whose cache is already filled (no refresh needed)."""

    async def _loader() -> list[ModelDescriptor]:
        return models

    catalog = ModelCatalog(_loader)
    catalog._models = {m.id: m for m in models}
    return catalog

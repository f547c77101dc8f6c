"""Fallback-resilient invocation over an ordered chain of model ids."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from binding_lab.errors import FallbackExhausted, ProviderError, ValidationError
from binding_lab.progress import ProgressLog
from binding_lab.services.catalog import ModelCatalog

logger = structlog.get_logger(__name__)


class CompletionClient(Protocol):
    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = ...,
        max_tokens: int = ...,
    ) -> str: ...


@dataclass
class InvocationResult:
    """Output of the first chain entry that succeeded."""

    output: str
    used_model_id: str
    used_model_name: str
    attempts: int
    position: int  # 0 = primary, i = fallback i


def normalize_chain(chain: list[str]) -> list[str]:
    """Drop blank and repeated ids, keeping the first occurrence's position."""
    seen: set[str] = set()
    result = []
    for model_id in chain:
        model_id = (model_id or "").strip()
        if model_id and model_id not in seen:
            seen.add(model_id)
            result.append(model_id)
    return result


class FallbackInvoker:
    """Tries each model of a chain once, in order, until one succeeds.

    Any failure (error status, transport error, timeout, rate limit, or an
    unexpected client exception) advances to the next entry immediately. An
    entry that failed is never retried.
    """

    def __init__(self, client: CompletionClient, catalog: Optional[ModelCatalog] = None):
        self.client = client
        self.catalog = catalog

    def _name(self, model_id: str) -> str:
        return self.catalog.display_name(model_id) if self.catalog else model_id

    async def invoke(
        self,
        chain: list[str],
        system_prompt: str,
        user_prompt: str,
        *,
        role: str = "model",
        temperature: float = 0.7,
        max_tokens: int = 500,
        progress: Optional[ProgressLog] = None,
    ) -> InvocationResult:
        """Invoke the chain and return the first success.

        Raises:
            ValidationError: If the chain has no usable model ids.
            FallbackExhausted: If every entry failed.
        """
        models = normalize_chain(chain)
        if not models:
            raise ValidationError(f"No {role} model selected")

        last_error: ProviderError | None = None

        for position, model_id in enumerate(models):
            name = self._name(model_id)
            slot = "primary" if position == 0 else f"fallback {position}"
            if progress is not None:
                progress.emit(f"🔄 {role}: trying {slot}: {name}")

            try:
                output = await self.client.complete(
                    model_id,
                    system_prompt,
                    user_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as e:
                error = (
                    e
                    if isinstance(e, ProviderError)
                    else ProviderError(model_id, str(e) or type(e).__name__)
                )
                last_error = error
                logger.info(
                    "chain_entry_failed",
                    role=role,
                    position=position,
                    model_id=model_id,
                    reason=error.label,
                    error=error.message,
                    exc_type=type(e).__name__,
                )
                if progress is not None:
                    progress.emit(f"❌ {role}: {slot} {name} failed ({error.label}): {error.message}")
                continue

            if position > 0:
                logger.info("chain_fallback_used", role=role, position=position, model_id=model_id)
                if progress is not None:
                    progress.emit(f"⚠️ {role} fallback {position} used: {name}")

            return InvocationResult(
                output=output,
                used_model_id=model_id,
                used_model_name=name,
                attempts=position + 1,
                position=position,
            )

        logger.warning("chain_exhausted", role=role, attempts=len(models))
        raise FallbackExhausted(role, attempts=len(models), last_error=last_error)

"""
Pydantic data models for the evaluation and binding pipeline.

These models define the structure of:
- ModelDescriptor: A model offered by the provider catalog, with pricing
- PromptTemplate: A named, categorized system/user prompt pair
- EvaluationRecord: One immutable entry of the evaluation ledger
- BindingConfig: The production model binding for a category (+ sub-level)
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CATEGORIES: tuple[str, ...] = ("translation", "grammar", "scoring", "chatting")

# Grammar prompts come in sensitivity levels; other categories have none.
GRAMMAR_SUB_LEVELS: tuple[str, ...] = ("minimal", "moderate", "verbose")

MAX_FALLBACKS = 4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_float(value: Any) -> float:
    """Parse catalog prices, which arrive as decimal strings."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class ErrorKind(str, Enum):
    """Classification of a failed candidate test."""

    JSON_PARSE = "json_parse"
    API_ERROR = "api_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"
    NOT_FOUND = "not_found"


class ModelDescriptor(BaseModel):
    """A model available from the provider catalog."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    provider: str = ""
    prompt_cost_per_token: float = Field(default=0.0, ge=0.0)
    completion_cost_per_token: float = Field(default=0.0, ge=0.0)
    reasoning_cost_per_token: float = Field(default=0.0, ge=0.0)
    context_length: int = Field(default=0, ge=0)
    modality: Optional[str] = None
    modality_tags: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_provider(cls, data: Any) -> Any:
        # Catalog ids look like "openai/gpt-4o"; the prefix names the provider.
        if isinstance(data, dict) and not data.get("provider"):
            model_id = data.get("id") or ""
            if "/" in model_id:
                data = {**data, "provider": model_id.split("/", 1)[0]}
        return data

    @property
    def total_unit_cost(self) -> float:
        """Sum of the per-token input and output prices."""
        return self.prompt_cost_per_token + self.completion_cost_per_token

    @property
    def is_free(self) -> bool:
        return self.prompt_cost_per_token == 0 and self.completion_cost_per_token == 0

    @property
    def has_reasoning_cost(self) -> bool:
        return self.reasoning_cost_per_token > 0

    @property
    def is_text_only(self) -> bool:
        """True when the model neither accepts nor produces non-text modalities."""
        if any(tag != "text" for tag in self.modality_tags):
            return False
        if self.modality and self.modality != "text->text":
            return False
        return True

    @classmethod
    def from_catalog_entry(cls, entry: dict[str, Any]) -> "ModelDescriptor":
        """Build a descriptor from one entry of the OpenRouter ``/models`` feed."""
        pricing = entry.get("pricing") or {}
        architecture = entry.get("architecture") or {}
        tags: list[str] = []
        for tag in list(architecture.get("input_modalities") or []) + list(
            architecture.get("output_modalities") or []
        ):
            if tag not in tags:
                tags.append(tag)
        model_id = entry["id"]
        return cls(
            id=model_id,
            name=entry.get("name") or model_id,
            provider=entry.get("provider") or "",
            prompt_cost_per_token=_to_float(pricing.get("prompt")),
            completion_cost_per_token=_to_float(pricing.get("completion")),
            reasoning_cost_per_token=_to_float(pricing.get("internal_reasoning")),
            context_length=int(entry.get("context_length") or 0),
            modality=architecture.get("modality"),
            modality_tags=tags,
        )


class PromptTemplate(BaseModel):
    """A saved prompt template. Never edited once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1)
    sub_level: Optional[str] = None
    system_prompt: str = ""
    user_prompt: str = ""
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class SubScore(BaseModel):
    """One named judge metric."""

    model_config = ConfigDict(frozen=True)

    score: float
    reason: str = ""


class EvaluationRecord(BaseModel):
    """One immutable entry of the evaluation ledger."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    category: str
    sub_level: Optional[str] = None
    test_input: str
    source_lang: str
    target_lang: str

    baseline_model_id: str
    baseline_model_name: str
    baseline_output: str

    model_id: str
    model_name: str
    model_output: str
    response_time_seconds: float = Field(default=0.0, ge=0.0)

    judge_model_id: str
    judge_model_name: str
    model_prompt: str = ""
    judge_prompt: str = ""

    score: float = Field(..., ge=0.0, le=100.0)
    detailed_scores: dict[str, SubScore] = Field(default_factory=dict)
    evaluation_notes: str = ""

    error: Optional[str] = None
    error_type: Optional[ErrorKind] = None

    @model_validator(mode="after")
    def _error_records_score_zero(self) -> "EvaluationRecord":
        if self.error is not None:
            if self.score != 0:
                raise ValueError("error records must have score 0")
            if self.error_type is None:
                raise ValueError("error records must set error_type")
        elif self.error_type is not None:
            raise ValueError("error_type set without an error message")
        return self

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def language_pair(self) -> str:
        return language_pair(self.source_lang, self.target_lang)

    def to_row(self) -> dict[str, Any]:
        """Serialise to the persisted (snake_case, JSON-safe) row shape."""
        return self.model_dump(mode="json")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "EvaluationRecord":
        return cls.model_validate(row)


def language_pair(source_lang: str, target_lang: str) -> str:
    """Language pair key used to filter evaluations, e.g. ``English>Spanish``."""
    return f"{source_lang}>{target_lang}"


class BindingKey(NamedTuple):
    """Composite key of a binding: category plus optional sub-level."""

    category: str
    sub_level: Optional[str] = None

    def __str__(self) -> str:
        if self.sub_level:
            return f"{self.category}/{self.sub_level}"
        return self.category


class BindingConfig(BaseModel):
    """Production model binding for a category (and optional sub-level)."""

    category: str = Field(..., min_length=1)
    sub_level: Optional[str] = None
    primary_model_id: str = Field(..., min_length=1)
    fallback_model_ids: list[str] = Field(default_factory=list, max_length=MAX_FALLBACKS)
    prompt_template_id: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("fallback_model_ids")
    @classmethod
    def _fallbacks_non_empty(cls, value: list[str]) -> list[str]:
        if any(not model_id.strip() for model_id in value):
            raise ValueError("fallback model ids must be non-empty")
        return value

    @model_validator(mode="after")
    def _ids_pairwise_distinct(self) -> "BindingConfig":
        ids = [self.primary_model_id, *self.fallback_model_ids]
        if len(set(ids)) != len(ids):
            raise ValueError("primary and fallback model ids must be pairwise distinct")
        return self

    @property
    def key(self) -> BindingKey:
        return BindingKey(self.category, self.sub_level)

    @property
    def chain(self) -> list[str]:
        """Primary followed by fallbacks, in routing order."""
        return [self.primary_model_id, *self.fallback_model_ids]

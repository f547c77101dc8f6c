"""
Prompt substitution and LLM judge scoring.

The judge compares a candidate's output against the baseline output and
returns a JSON verdict. Scores are on a 0-100 scale:

    combinedTotal = accuracy/quality points + response speed points

Score Resolution:
    1. ``combinedTotal`` when present and numeric
    2. otherwise a flat ``score`` field
    3. otherwise 0 -- a missing total is never guessed or interpolated
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from binding_lab.errors import ParseError
from binding_lab.models import SubScore
from binding_lab.normalizer import ParseFailure, normalize_response
from binding_lab.progress import ProgressLog
from binding_lab.services.invoker import FallbackInvoker

logger = structlog.get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

MIN_SCORE = 0.0
MAX_SCORE = 100.0

# Response time upper bounds (seconds) -> speed points.
SPEED_POINTS: list[tuple[float, int]] = [
    (1.0, 15),
    (2.0, 13),
    (3.0, 11),
    (5.0, 8),
    (10.0, 5),
]
SLOWEST_SPEED_POINTS = 2


def substitute(template: str, variables: dict[str, Any]) -> str:
    """Replace ``{name}`` placeholders; unknown placeholders are left as-is."""

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def build_task_prompt(template: str, source_lang: str, target_lang: str) -> str:
    """Fill the language placeholders of a candidate/baseline task prompt."""
    return substitute(
        template,
        {
            "source": source_lang,
            "target": target_lang,
            "learning_language": source_lang,
            "native_language": target_lang,
        },
    )


@dataclass
class JudgeContext:
    """Everything the judge prompt can reference."""

    learning_language: str
    native_language: str
    user_message: str
    baseline_output: str
    model_name: str
    model_output: str
    response_time_seconds: float

    def variables(self) -> dict[str, str]:
        return {
            "learning_language": self.learning_language,
            "native_language": self.native_language,
            "user_message": self.user_message,
            "baseline_output": self.baseline_output,
            # Older templates call the baseline "google_translate_output".
            "google_translate_output": self.baseline_output,
            "model_name": self.model_name,
            "model_output": self.model_output,
            "response_time_seconds": f"{self.response_time_seconds:.2f}",
            "speed_points": str(speed_points(self.response_time_seconds)),
        }


def build_judge_prompt(template: str, context: JudgeContext) -> str:
    return substitute(template, context.variables())


def speed_points(response_time_seconds: float) -> int:
    """Speed points of the default judge rubric for a response time."""
    for upper_bound, points in SPEED_POINTS:
        if response_time_seconds <= upper_bound:
            return points
    return SLOWEST_SPEED_POINTS


@dataclass
class Judgement:
    """Parsed judge verdict."""

    score: float
    detailed_scores: dict[str, SubScore] = field(default_factory=dict)
    notes: str = ""


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def parse_judgement(data: dict[str, Any]) -> Judgement:
    """Extract sub-scores, total score and notes from a parsed judge response."""
    detailed: dict[str, SubScore] = {}
    for name, value in data.items():
        if isinstance(value, dict) and "score" in value:
            sub_score = _as_number(value.get("score"))
            if sub_score is None:
                continue
            detailed[name] = SubScore(score=sub_score, reason=str(value.get("reason") or ""))

    total = _as_number(data.get("combinedTotal"))
    if total is None:
        total = _as_number(data.get("score"))
    if total is None:
        logger.warning("judge_total_missing", keys=sorted(data.keys()))
        total = 0.0

    if total < MIN_SCORE or total > MAX_SCORE:
        logger.warning("judge_score_clamped", score=total)
        total = min(max(total, MIN_SCORE), MAX_SCORE)

    notes = data.get("evaluation") or data.get("notes") or ""
    return Judgement(score=total, detailed_scores=detailed, notes=str(notes))


@dataclass
class JudgeVerdict:
    judgement: Judgement
    judge_model_id: str
    judge_model_name: str
    prompt: str


class Judge:
    """Scores candidate outputs with the judge chain."""

    def __init__(
        self,
        invoker: FallbackInvoker,
        chain: list[str],
        system_prompt: str,
        prompt_template: str,
        temperature: float = 0.0,
        max_tokens: int = 1000,
    ):
        self.invoker = invoker
        self.chain = chain
        self.system_prompt = system_prompt
        self.prompt_template = prompt_template
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def score(
        self, context: JudgeContext, progress: Optional[ProgressLog] = None
    ) -> JudgeVerdict:
        """Judge one candidate output.

        Raises:
            FallbackExhausted: If every judge model failed.
            ParseError: If the judge response is not a JSON object.
        """
        prompt = build_judge_prompt(self.prompt_template, context)
        result = await self.invoker.invoke(
            self.chain,
            self.system_prompt,
            prompt,
            role="judge",
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            progress=progress,
        )

        parsed = normalize_response(result.output)
        if isinstance(parsed, ParseFailure):
            logger.error(
                "judge_parse_failed",
                judge_model_id=result.used_model_id,
                error=parsed.message,
                raw=parsed.raw[:300],
                cleaned=parsed.cleaned[:300],
            )
            raise ParseError(parsed.message, raw_text=parsed.raw, cleaned_text=parsed.cleaned)

        return JudgeVerdict(
            judgement=parse_judgement(parsed.data),
            judge_model_id=result.used_model_id,
            judge_model_name=result.used_model_name,
            prompt=prompt,
        )

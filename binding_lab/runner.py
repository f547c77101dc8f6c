"""
Evaluation run orchestrator.

A run benchmarks a set of candidate models on one test input:

1. Pre-flight validation (no network call, nothing persisted on failure)
2. Baseline generation through the baseline fallback chain (phase barrier)
3. Candidate testing on a bounded worker pool: one call per candidate,
   judged against the baseline, appended to the ledger as soon as scored
4. Cooperative cancellation between candidate dispatches

A failure of one candidate never stops the others; it becomes a zero-score
error record. Only validation errors and an unusable baseline abort a run.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import uuid4

import structlog

from binding_lab.errors import (
    FallbackExhausted,
    StoreError,
    ValidationError,
    classify_error,
    describe_error,
)
from binding_lab.judge import Judge, JudgeContext, build_task_prompt
from binding_lab.models import EvaluationRecord, utc_now
from binding_lab.progress import ProgressLog
from binding_lab.prompts.defaults import JUDGE_PROMPT, JUDGE_SYSTEM_PROMPT
from binding_lab.services.catalog import ModelCatalog
from binding_lab.services.evaluation_store import EvaluationStore
from binding_lab.services.invoker import CompletionClient, FallbackInvoker, normalize_chain

logger = structlog.get_logger(__name__)


@dataclass
class BaselineResult:
    """Reference output every candidate of a run is compared against."""

    output: str
    model_id: str
    model_name: str


class BaselineGenerator:
    """Produces the baseline output once per run through the baseline chain."""

    def __init__(self, invoker: FallbackInvoker, temperature: float = 0.7, max_tokens: int = 500):
        self.invoker = invoker
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(
        self,
        chain: list[str],
        task_prompt: str,
        test_input: str,
        progress: Optional[ProgressLog] = None,
    ) -> BaselineResult:
        """Raises FallbackExhausted when every baseline model failed."""
        result = await self.invoker.invoke(
            chain,
            task_prompt,
            test_input,
            role="baseline",
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            progress=progress,
        )
        return BaselineResult(
            output=result.output,
            model_id=result.used_model_id,
            model_name=result.used_model_name,
        )


@dataclass
class CandidateOutput:
    output: str
    response_time_seconds: float


class CandidateTester:
    """Invokes exactly one candidate model exactly once, timing the call.

    There is no fallback here: substituting another model would make the
    measurement meaningless.
    """

    def __init__(
        self,
        client: CompletionClient,
        temperature: float = 0.7,
        max_tokens: int = 500,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.clock = clock

    async def test(self, model_id: str, task_prompt: str, test_input: str) -> CandidateOutput:
        started = self.clock()
        output = await self.client.complete(
            model_id,
            task_prompt,
            test_input,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        elapsed = round(self.clock() - started, 2)
        return CandidateOutput(output=output, response_time_seconds=max(elapsed, 0.0))


@dataclass
class RunRequest:
    """Everything an evaluation run needs, captured before it starts."""

    category: str
    test_input: str
    source_lang: str
    target_lang: str
    task_prompt: str
    baseline_chain: list[str]
    judge_chain: list[str]
    candidate_ids: list[str]
    credential: Optional[str]
    sub_level: Optional[str] = None
    judge_system_prompt: str = JUDGE_SYSTEM_PROMPT
    judge_prompt: str = JUDGE_PROMPT


@dataclass
class RunResult:
    records: list[EvaluationRecord] = field(default_factory=list)
    baseline: Optional[BaselineResult] = None
    cancelled: bool = False
    aborted: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.records if not r.is_error)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.records if r.is_error)


def validate_request(request: RunRequest, *, check_test_input: bool = True) -> None:
    """Pre-flight checks.

    ``check_test_input=False`` lets a caller validate before the test input is
    loaded from a template.

    Raises:
        ValidationError: On the first missing input.
    """
    if not (request.credential or "").strip():
        raise ValidationError("Provider API key is not configured")
    if not normalize_chain(request.baseline_chain):
        raise ValidationError("Please select a baseline model")
    if not normalize_chain(request.judge_chain):
        raise ValidationError("Please select a judge model")
    if not normalize_chain(request.candidate_ids):
        raise ValidationError("Please select at least one model to test")
    if check_test_input and not request.test_input.strip():
        raise ValidationError("Please enter a test input")
    if not request.category.strip():
        raise ValidationError("Please select a category")


JudgeFactory = Callable[[RunRequest], Judge]


class EvaluationRunner:
    """Runs one evaluation: baseline, then candidates on a worker pool."""

    def __init__(
        self,
        catalog: ModelCatalog,
        invoker: FallbackInvoker,
        client: CompletionClient,
        store: EvaluationStore,
        judge_factory: Optional[JudgeFactory] = None,
        max_workers: int = 4,
        progress: Optional[ProgressLog] = None,
        baseline_generator: Optional[BaselineGenerator] = None,
        tester: Optional[CandidateTester] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.catalog = catalog
        self.invoker = invoker
        self.store = store
        self.judge_factory = judge_factory or self._default_judge
        self.max_workers = max_workers
        self.progress = progress if progress is not None else ProgressLog()
        self.baseline_generator = baseline_generator or BaselineGenerator(invoker)
        self.tester = tester or CandidateTester(client)
        self._cancel = asyncio.Event()

    def _default_judge(self, request: RunRequest) -> Judge:
        return Judge(
            self.invoker,
            request.judge_chain,
            request.judge_system_prompt,
            request.judge_prompt,
        )

    def cancel(self) -> None:
        """Stop dispatching new candidates; in-flight candidates still finish."""
        if not self._cancel.is_set():
            logger.info("run_cancel_requested")
            self.progress.emit("⏹️ Cancelling: no new models will be started")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def run(self, request: RunRequest) -> RunResult:
        """Execute a run and return the records it appended.

        Raises:
            ValidationError: If pre-flight validation fails.
        """
        validate_request(request)
        self._cancel.clear()
        started = time.perf_counter()

        if not self.catalog.is_loaded:
            await self.catalog.refresh()

        task_prompt = build_task_prompt(request.task_prompt, request.source_lang, request.target_lang)
        candidates = normalize_chain(request.candidate_ids)
        log = logger.bind(category=request.category, sub_level=request.sub_level)
        log.info("run_started", candidate_count=len(candidates))

        try:
            baseline = await self.baseline_generator.generate(
                request.baseline_chain, task_prompt, request.test_input, progress=self.progress
            )
        except FallbackExhausted as e:
            message = describe_error(e)
            log.error("baseline_failed", attempts=e.attempts, error=message)
            self.progress.emit(f"❌ Baseline failed: {message}")
            return RunResult(
                aborted=True,
                error=message,
                duration_seconds=round(time.perf_counter() - started, 2),
            )

        self.progress.emit(f"✅ Baseline ready: {baseline.model_name}")
        log.info("baseline_generated", baseline_model_id=baseline.model_id)

        judge = self.judge_factory(request)
        records: list[EvaluationRecord] = []
        queue: asyncio.Queue[str] = asyncio.Queue()
        for model_id in candidates:
            queue.put_nowait(model_id)

        async def worker() -> None:
            while not self._cancel.is_set():
                try:
                    model_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                record = await self._evaluate_candidate(request, task_prompt, baseline, judge, model_id)
                if await self._append(record):
                    records.append(record)

        workers = [
            asyncio.create_task(worker()) for _ in range(min(self.max_workers, len(candidates)))
        ]
        await asyncio.gather(*workers)

        result = RunResult(
            records=records,
            baseline=baseline,
            cancelled=self._cancel.is_set(),
            duration_seconds=round(time.perf_counter() - started, 2),
        )
        log.info(
            "run_completed",
            recorded=len(records),
            succeeded=result.success_count,
            failed=result.error_count,
            cancelled=result.cancelled,
            duration_seconds=result.duration_seconds,
        )
        self.progress.emit(
            f"🏁 Done: {result.success_count} scored, {result.error_count} failed"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    async def _append(self, record: EvaluationRecord) -> bool:
        try:
            await self.store.append(record)
        except StoreError as e:
            logger.error("evaluation_append_failed", evaluation_id=record.id, error=str(e))
            self.progress.emit(f"❌ {record.model_name}: failed to save evaluation: {e}")
            return False
        return True

    async def _evaluate_candidate(
        self,
        request: RunRequest,
        task_prompt: str,
        baseline: BaselineResult,
        judge: Judge,
        model_id: str,
    ) -> EvaluationRecord:
        """Test and judge one candidate. Never raises; failures become error records."""
        base = {
            "id": str(uuid4()),
            "category": request.category,
            "sub_level": request.sub_level,
            "test_input": request.test_input,
            "source_lang": request.source_lang,
            "target_lang": request.target_lang,
            "baseline_model_id": baseline.model_id,
            "baseline_model_name": baseline.model_name,
            "baseline_output": baseline.output,
            "model_id": model_id,
            "model_prompt": task_prompt,
        }
        primary_judge = normalize_chain(request.judge_chain)[0]
        model_name = model_id
        output: Optional[str] = None
        response_time = 0.0

        try:
            model_name = self.catalog.require(model_id).name
            self.progress.emit(f"🔄 Testing {model_name}")

            candidate = await self.tester.test(model_id, task_prompt, request.test_input)
            output = candidate.output
            response_time = candidate.response_time_seconds

            verdict = await judge.score(
                JudgeContext(
                    learning_language=request.source_lang,
                    native_language=request.target_lang,
                    user_message=request.test_input,
                    baseline_output=baseline.output,
                    model_name=model_name,
                    model_output=output,
                    response_time_seconds=response_time,
                ),
                progress=self.progress,
            )
        except Exception as e:
            kind = classify_error(e)
            message = describe_error(e)
            logger.warning(
                "candidate_failed",
                model_id=model_id,
                error_type=kind.value,
                error=message[:300],
            )
            self.progress.emit(f"❌ {model_name}: {message}")
            return EvaluationRecord(
                **base,
                timestamp=utc_now(),
                model_name=model_name,
                model_output=output or "",
                response_time_seconds=response_time,
                judge_model_id=primary_judge,
                judge_model_name=self.catalog.display_name(primary_judge),
                score=0,
                evaluation_notes="",
                error=message,
                error_type=kind,
            )

        judgement = verdict.judgement
        logger.info(
            "candidate_scored",
            model_id=model_id,
            score=judgement.score,
            response_time_seconds=response_time,
            judge_model_id=verdict.judge_model_id,
        )
        self.progress.emit(f"✅ {model_name}: {judgement.score:.1f}/100")
        return EvaluationRecord(
            **base,
            timestamp=utc_now(),
            model_name=model_name,
            model_output=output,
            response_time_seconds=response_time,
            judge_model_id=verdict.judge_model_id,
            judge_model_name=verdict.judge_model_name,
            judge_prompt=verdict.prompt,
            score=judgement.score,
            detailed_scores=judgement.detailed_scores,
            evaluation_notes=judgement.notes,
        )

"""Click CLI commands for model evaluation and binding selection."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from typing import Optional

import click

from binding_lab.config import LabSettings, get_settings
from binding_lab.database import build_stores, close_database
from binding_lab.errors import BindingValidationError, ProviderError, StoreError, ValidationError
from binding_lab.judge import Judge
from binding_lab.models import (
    DEFAULT_CATEGORIES,
    GRAMMAR_SUB_LEVELS,
    MAX_FALLBACKS,
    BindingConfig,
    BindingKey,
    EvaluationRecord,
)
from binding_lab.pipeline.aggregator import language_pairs, load_aggregates
from binding_lab.pipeline.models import Ranking
from binding_lab.pipeline.selector import BindingSelection, auto_select, rank
from binding_lab.pipeline.tracking import log_run
from binding_lab.progress import ProgressLog
from binding_lab.prompts.defaults import DEFAULT_TEST_INPUT, JUDGE_PROMPT, default_task_prompt
from binding_lab.runner import (
    BaselineGenerator,
    CandidateTester,
    EvaluationRunner,
    RunRequest,
    RunResult,
    validate_request,
)
from binding_lab.services.catalog import (
    ModelCatalog,
    fetch_catalog,
    filter_models,
    format_context_length,
    format_cost,
    sort_models,
)
from binding_lab.services.invoker import FallbackInvoker
from binding_lab.services.logging_service import configure_logging
from binding_lab.services.openrouter_client import OpenRouterClient
from binding_lab.services.template_store import TemplateCatalog

CATEGORY_HELP = f"Task category ({', '.join(DEFAULT_CATEGORIES)} or a custom one)."
SUB_LEVEL_HELP = f"Category sub-level; grammar takes {', '.join(GRAMMAR_SUB_LEVELS)}."


def _make_catalog(settings: LabSettings) -> ModelCatalog:
    return ModelCatalog(
        lambda: fetch_catalog(settings.openrouter_base_url, settings.request_timeout_seconds)
    )


def _make_client(settings: LabSettings) -> OpenRouterClient:
    return OpenRouterClient(
        api_key=settings.openrouter_api_key or "",
        base_url=settings.openrouter_base_url,
        timeout=settings.request_timeout_seconds,
        referer=settings.http_referer,
    )


def _complete_category(ctx, param, incomplete: str) -> list[str]:
    return [c for c in DEFAULT_CATEGORIES if c.startswith(incomplete)]


def _complete_sub_level(ctx, param, incomplete: str) -> list[str]:
    return [s for s in GRAMMAR_SUB_LEVELS if s.startswith(incomplete)]


def _check_sub_level(category: str, sub_level: Optional[str]) -> None:
    """Reject grammar sub-levels outside the known sensitivity levels."""
    if category == "grammar" and sub_level is not None and sub_level not in GRAMMAR_SUB_LEVELS:
        raise click.BadParameter(
            f"{sub_level!r} is not a grammar level (choose from {', '.join(GRAMMAR_SUB_LEVELS)})",
            param_hint="'--sub-level'",
        )


@click.group()
def cli() -> None:
    """Binding Lab: benchmark LLM candidates against a baseline and pick production bindings."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)


# ---------------------------------------------------------------------------
# models command
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--text-only", is_flag=True, help="Hide models with non-text modalities.")
@click.option("--exclude-reasoning", is_flag=True, help="Hide models that bill reasoning tokens.")
@click.option("--exclude-free", is_flag=True, help="Hide free models.")
@click.option("--search", default="", help="Substring match on model name or id.")
@click.option("--sort", "sort_by", default="name", type=click.Choice(["name", "cost"]))
@click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)
def models(
    text_only: bool,
    exclude_reasoning: bool,
    exclude_free: bool,
    search: str,
    sort_by: str,
    output_format: str,
) -> None:
    """List the provider's model catalog."""
    settings = get_settings()
    catalog = _make_catalog(settings)

    try:
        asyncio.run(catalog.refresh())
    except ProviderError as e:
        click.echo(f"Failed to load model catalog: {e}", err=True)
        sys.exit(1)

    selected = filter_models(
        catalog.all(),
        text_only=text_only,
        exclude_reasoning=exclude_reasoning,
        exclude_free=exclude_free,
        search=search,
    )
    selected = sort_models(selected, by=sort_by)

    if output_format == "json":
        click.echo(json.dumps([m.model_dump(mode="json") for m in selected], indent=2))
        return

    click.echo()
    click.echo(f"Models ({len(selected)} of {len(catalog.all())})")
    click.echo("=" * 90)
    click.echo(f"  {'Model':<44} {'Input/1K':<11} {'Output/1K':<11} {'Context':<9} {'Provider'}")
    for m in selected:
        click.echo(
            f"  {m.id[:44]:<44} {format_cost(m.prompt_cost_per_token):<11} "
            f"{format_cost(m.completion_cost_per_token):<11} "
            f"{format_context_length(m.context_length):<9} {m.provider}"
        )
    click.echo()



# ---------------------------------------------------------------------------
# run command
# ---------------------------------------------------------------------------


async def _template_text(stores, template_id: str, *, for_input: bool = False) -> str:
    """Prompt text of a saved template.

    Task and judge templates contribute their system prompt. A test-input
    template contributes its user prompt, or the system prompt when it has none.
    """
    template = await stores.templates.get(template_id)
    if template is None:
        raise ValidationError(f"Template not found: {template_id}")
    text = (template.user_prompt or template.system_prompt) if for_input else template.system_prompt
    if not text.strip():
        raise ValidationError(f"Template {template_id} has no prompt text")
    return text


async def _execute_run(
    settings: LabSettings,
    *,
    category: str,
    sub_level: Optional[str],
    test_input: str,
    source_lang: str,
    target_lang: str,
    template_id: Optional[str],
    prompt: Optional[str],
    judge_template_id: Optional[str],
    judge_prompt: Optional[str],
    input_template_id: Optional[str],
    baseline: tuple[str, ...],
    judge: tuple[str, ...],
    candidates: tuple[str, ...],
    workers: int,
) -> tuple[RunRequest, RunResult]:
    request = RunRequest(
        category=category,
        sub_level=sub_level,
        test_input=test_input,
        source_lang=source_lang,
        target_lang=target_lang,
        task_prompt=prompt or "",
        baseline_chain=list(baseline),
        judge_chain=list(judge),
        candidate_ids=list(candidates),
        credential=settings.openrouter_api_key,
        judge_prompt=judge_prompt or JUDGE_PROMPT,
    )
    # Nothing is opened until the inputs given on the command line are valid.
    validate_request(request, check_test_input=input_template_id is None)

    stores = await build_stores(settings)
    client = _make_client(settings)
    catalog = _make_catalog(settings)
    invoker = FallbackInvoker(client, catalog)

    try:
        if not prompt:
            request.task_prompt = (
                await _template_text(stores, template_id)
                if template_id
                else default_task_prompt(category, sub_level)
            )
        if judge_template_id and not judge_prompt:
            request.judge_prompt = await _template_text(stores, judge_template_id)
        if input_template_id:
            request.test_input = await _template_text(stores, input_template_id, for_input=True)

        runner = EvaluationRunner(
            catalog=catalog,
            invoker=invoker,
            client=client,
            store=stores.evaluations,
            judge_factory=lambda req: Judge(
                invoker,
                req.judge_chain,
                req.judge_system_prompt,
                req.judge_prompt,
                temperature=settings.judge_temperature,
                max_tokens=settings.judge_max_tokens,
            ),
            max_workers=workers,
            progress=ProgressLog(sink=click.echo),
            baseline_generator=BaselineGenerator(
                invoker, settings.candidate_temperature, settings.candidate_max_tokens
            ),
            tester=CandidateTester(
                client, settings.candidate_temperature, settings.candidate_max_tokens
            ),
        )

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, runner.cancel)
            handler_installed = True
        except (NotImplementedError, RuntimeError):
            handler_installed = False

        try:
            result = await runner.run(request)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
    finally:
        await client.close()
        await close_database()

    return request, result


@cli.command()
@click.option("--category", required=True, help=CATEGORY_HELP, shell_complete=_complete_category)
@click.option("--sub-level", default=None, help=SUB_LEVEL_HELP, shell_complete=_complete_sub_level)
@click.option("--input", "test_input", default=DEFAULT_TEST_INPUT, help="Test input text.")
@click.option(
    "--input-template",
    "input_template_id",
    default=None,
    help="Saved template whose user prompt is the test input (overrides --input).",
)
@click.option("--source-lang", default="English", help="Source (learning) language.")
@click.option("--target-lang", default="Spanish", help="Target (native) language.")
@click.option("--template", "template_id", default=None, help="Saved task prompt template id.")
@click.option("--prompt", default=None, help="Task prompt text (overrides --template).")
@click.option("--judge-template", "judge_template_id", default=None, help="Saved judge prompt template id.")
@click.option("--judge-prompt", default=None, help="Judge prompt text (overrides --judge-template).")
@click.option("--baseline", multiple=True, help="Baseline chain, in order (repeatable).")
@click.option("--judge", multiple=True, help="Judge chain, in order (repeatable).")
@click.option("--candidate", multiple=True, help="Candidate model id (repeatable).")
@click.option("--workers", default=None, type=click.IntRange(1, 32), help="Concurrent candidates.")
def run(
    category: str,
    sub_level: Optional[str],
    test_input: str,
    input_template_id: Optional[str],
    source_lang: str,
    target_lang: str,
    template_id: Optional[str],
    prompt: Optional[str],
    judge_template_id: Optional[str],
    judge_prompt: Optional[str],
    baseline: tuple[str, ...],
    judge: tuple[str, ...],
    candidate: tuple[str, ...],
    workers: Optional[int],
) -> None:
    """Evaluate candidate models against a baseline. Ctrl-C stops new dispatches."""
    _check_sub_level(category, sub_level)
    settings = get_settings()

    try:
        request, result = asyncio.run(
            _execute_run(
                settings,
                category=category,
                sub_level=sub_level,
                test_input=test_input,
                source_lang=source_lang,
                target_lang=target_lang,
                template_id=template_id,
                prompt=prompt,
                judge_template_id=judge_template_id,
                judge_prompt=judge_prompt,
                input_template_id=input_template_id,
                baseline=baseline,
                judge=judge,
                candidates=candidate,
                workers=workers or settings.eval_max_workers,
            )
        )
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except (ProviderError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if result.aborted:
        click.echo(f"Run aborted: {result.error}", err=True)
        sys.exit(1)

    log_run(request, result, settings)
    _print_run_summary(result)


def _print_run_summary(result: RunResult) -> None:
    click.echo()
    title = "Evaluation Results" + (" (cancelled)" if result.cancelled else "")
    click.echo(title)
    click.echo("=" * 72)
    if result.baseline is not None:
        click.echo(f"Baseline: {result.baseline.model_name}")
    click.echo(f"  {'Model':<40} {'Score':<8} {'Time':<8} {'Status'}")
    for record in sorted(result.records, key=lambda r: (-r.score, r.model_id)):
        status = record.error_type.value if record.error_type else "ok"
        click.echo(
            f"  {record.model_name[:40]:<40} {record.score:<8.1f} "
            f"{record.response_time_seconds:<8.2f} {status}"
        )
    click.echo()
    click.echo(
        f"{result.success_count} scored, {result.error_count} failed "
        f"in {result.duration_seconds:.1f}s"
    )


# ---------------------------------------------------------------------------
# rank command
# ---------------------------------------------------------------------------


async def _load_ranking(
    settings: LabSettings, category: str, threshold: float, language_pair: Optional[str]
) -> Ranking:
    stores = await build_stores(settings)
    try:
        aggregates = await load_aggregates(
            stores.evaluations, _make_catalog(settings), category, language_pair
        )
    finally:
        await close_database()
    return rank(aggregates, threshold)


@cli.command(name="rank")
@click.option("--category", required=True, help=CATEGORY_HELP, shell_complete=_complete_category)
@click.option("--threshold", default=None, type=click.FloatRange(0, 100), help="Quality threshold.")
@click.option("--language-pair", default=None, help="Only evaluations of this pair, e.g. 'English>Spanish'.")
@click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)
def rank_command(
    category: str, threshold: Optional[float], language_pair: Optional[str], output_format: str
) -> None:
    """Rank evaluated models by quality and cost."""
    settings = get_settings()
    threshold = settings.quality_threshold if threshold is None else threshold

    try:
        ranking = asyncio.run(_load_ranking(settings, category, threshold, language_pair))
    except (ProviderError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not ranking.entries:
        click.echo(f"No evaluations found for category: {category}")
        return

    if output_format == "json":
        _print_ranking_json(ranking)
    else:
        _print_ranking_table(ranking, category)


def _print_ranking_table(ranking: Ranking, category: str) -> None:
    click.echo()
    click.echo(f"Ranking: {category} (threshold {ranking.threshold:g})")
    click.echo("=" * 92)
    click.echo(
        f"  {'Model':<40} {'Mean':<7} {'Tests':<6} {'Errors':<7} {'Cost/1K':<11} {'Multiple':<9} {'Eligible'}"
    )
    for entry in ranking.entries:
        a = entry.aggregate
        mean = f"{a.mean_score:.1f}" if a.mean_score is not None else "-"
        cost = format_cost(a.total_unit_cost) if a.total_unit_cost is not None else "n/a"
        multiple = f"{entry.cost_multiple:.1f}x" if entry.cost_multiple is not None else "-"
        marker = " (baseline)" if entry.is_baseline else ""
        click.echo(
            f"  {a.model_id[:40]:<40} {mean:<7} {a.test_count:<6} {a.error_count:<7} "
            f"{cost:<11} {multiple:<9} {'yes' if entry.eligible else 'no'}{marker}"
        )
    click.echo()


def _print_ranking_json(ranking: Ranking) -> None:
    data = {
        "threshold": ranking.threshold,
        "baseline_model_id": ranking.baseline.model_id if ranking.baseline else None,
        "entries": [
            {
                "model_id": e.aggregate.model_id,
                "model_name": e.aggregate.model_name,
                "mean_score": e.aggregate.mean_score,
                "test_count": e.aggregate.test_count,
                "error_count": e.aggregate.error_count,
                "last_tested": e.aggregate.last_tested.isoformat(),
                "total_unit_cost": e.aggregate.total_unit_cost,
                "cost_multiple": e.cost_multiple,
                "eligible": e.eligible,
                "is_baseline": e.is_baseline,
            }
            for e in ranking.entries
        ],
    }
    click.echo(json.dumps(data, indent=2))


# ---------------------------------------------------------------------------
# bind / bindings commands
# ---------------------------------------------------------------------------


def _edit_selection(
    existing: BindingConfig,
    primary: Optional[str],
    fallbacks: tuple[str, ...],
    removals: tuple[str, ...],
) -> BindingSelection:
    """Apply slot changes to a saved binding.

    ``--primary`` replaces slot 0, ``--fallback`` replaces every fallback
    slot, and each ``--remove`` empties the slot holding that model.
    """
    selection = BindingSelection.from_config(existing)
    if primary:
        selection.assign(0, primary)
    if fallbacks:
        if len(set(fallbacks)) != len(fallbacks):
            raise BindingValidationError("Primary and fallback models must all be different")
        for slot in range(1, MAX_FALLBACKS + 1):
            selection.clear(slot)
        for slot, model_id in enumerate(fallbacks, start=1):
            selection.assign(slot, model_id)
    for model_id in removals:
        slots = selection.slots
        if model_id not in slots:
            raise BindingValidationError(f"{model_id} is not in binding {existing.key}")
        selection.clear(slots.index(model_id))
    return selection


async def _save_binding(
    settings: LabSettings,
    *,
    category: str,
    sub_level: Optional[str],
    primary: Optional[str],
    fallbacks: tuple[str, ...],
    removals: tuple[str, ...],
    edit: bool,
    auto: bool,
    threshold: float,
    language_pair: Optional[str],
    template_id: Optional[str],
    temperature: Optional[float],
    max_tokens: Optional[int],
) -> BindingConfig:
    if removals and not edit:
        raise BindingValidationError("--remove only applies with --edit")

    stores = await build_stores(settings)
    try:
        if template_id and await stores.templates.get(template_id) is None:
            raise BindingValidationError(f"Template not found: {template_id}")

        existing = None
        if edit:
            key = BindingKey(category, sub_level)
            existing = await stores.bindings.get(key)
            if existing is None:
                raise BindingValidationError(f"No saved binding for {key}")

        if auto:
            aggregates = await load_aggregates(
                stores.evaluations, _make_catalog(settings), category, language_pair
            )
            selection = auto_select(rank(aggregates, threshold), category, sub_level)
        elif existing is not None:
            selection = _edit_selection(existing, primary, fallbacks, removals)
        else:
            if not primary:
                raise BindingValidationError("--primary is required unless --auto is given")
            ids = [primary, *fallbacks]
            if len(set(ids)) != len(ids):
                raise BindingValidationError("Primary and fallback models must all be different")
            selection = BindingSelection(category, sub_level)
            for slot, model_id in enumerate(ids):
                selection.assign(slot, model_id)

        if existing is not None:
            template_id = template_id or existing.prompt_template_id
            temperature = existing.temperature if temperature is None else temperature
            max_tokens = existing.max_tokens if max_tokens is None else max_tokens

        config = selection.to_config(
            template_id,
            0.7 if temperature is None else temperature,
            1000 if max_tokens is None else max_tokens,
        )
        return await stores.bindings.save(config)
    finally:
        await close_database()


@cli.command()
@click.option("--category", required=True, help=CATEGORY_HELP, shell_complete=_complete_category)
@click.option("--sub-level", default=None, help=SUB_LEVEL_HELP, shell_complete=_complete_sub_level)
@click.option("--primary", default=None, help="Primary model id.")
@click.option("--fallback", multiple=True, help="Fallback model id, in order (repeatable, max 4).")
@click.option("--edit", is_flag=True, help="Change the saved binding instead of replacing it.")
@click.option("--remove", multiple=True, help="With --edit: drop this model from its slot (repeatable).")
@click.option("--auto", is_flag=True, help="Pick primary and fallbacks from the ranking.")
@click.option("--threshold", default=None, type=click.FloatRange(0, 100))
@click.option("--language-pair", default=None)
@click.option("--template", "template_id", default=None, help="Prompt template id.")
@click.option("--temperature", default=None, type=click.FloatRange(0, 2), help="Default 0.7.")
@click.option("--max-tokens", default=None, type=click.IntRange(min=1), help="Default 1000.")
def bind(
    category: str,
    sub_level: Optional[str],
    primary: Optional[str],
    fallback: tuple[str, ...],
    edit: bool,
    remove: tuple[str, ...],
    auto: bool,
    threshold: Optional[float],
    language_pair: Optional[str],
    template_id: Optional[str],
    temperature: Optional[float],
    max_tokens: Optional[int],
) -> None:
    """Save the production binding for a category (and sub-level)."""
    _check_sub_level(category, sub_level)
    settings = get_settings()

    try:
        config = asyncio.run(
            _save_binding(
                settings,
                category=category,
                sub_level=sub_level,
                primary=primary,
                fallbacks=fallback,
                removals=remove,
                edit=edit,
                auto=auto,
                threshold=settings.quality_threshold if threshold is None else threshold,
                language_pair=language_pair,
                template_id=template_id,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        )
    except BindingValidationError as e:
        click.echo(f"Invalid binding: {e}", err=True)
        sys.exit(2)
    except (ProviderError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Saved binding {config.key}")
    _print_binding(config)


def _print_binding(config: BindingConfig) -> None:
    click.echo(f"  primary:     {config.primary_model_id}")
    for i, model_id in enumerate(config.fallback_model_ids, start=1):
        click.echo(f"  fallback {i}:  {model_id}")
    click.echo(f"  template:    {config.prompt_template_id or '-'}")
    click.echo(f"  temperature: {config.temperature:g}  max_tokens: {config.max_tokens}")


async def _list_bindings(settings: LabSettings) -> list[BindingConfig]:
    stores = await build_stores(settings)
    try:
        return await stores.bindings.list()
    finally:
        await close_database()


@cli.command()
@click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)
def bindings(output_format: str) -> None:
    """Show saved production bindings."""
    try:
        configs = asyncio.run(_list_bindings(get_settings()))
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_format == "json":
        click.echo(json.dumps([c.model_dump(mode="json") for c in configs], indent=2))
        return

    if not configs:
        click.echo("No bindings saved yet.")
        return

    for config in configs:
        click.echo(str(config.key))
        _print_binding(config)
        click.echo()


# ---------------------------------------------------------------------------
# evaluations commands
# ---------------------------------------------------------------------------


@cli.group()
def evaluations() -> None:
    """Browse the evaluation ledger."""


async def _query_evaluations(
    settings: LabSettings, category: str, language_pair: Optional[str]
) -> tuple[list[EvaluationRecord], list[str]]:
    stores = await build_stores(settings)
    try:
        records = await stores.evaluations.query(category)
    finally:
        await close_database()
    pairs = language_pairs(records)
    if language_pair is not None:
        records = [r for r in records if r.language_pair == language_pair]
    return records, pairs


@evaluations.command(name="list")
@click.option("--category", required=True, help=CATEGORY_HELP, shell_complete=_complete_category)
@click.option("--language-pair", default=None, help="Only this pair, e.g. 'English>Spanish'.")
@click.option("--model", "model_id", default=None, help="Only this model id.")
@click.option("--limit", default=20, type=click.IntRange(min=1), help="Newest N evaluations.")
@click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)
def evaluations_list(
    category: str,
    language_pair: Optional[str],
    model_id: Optional[str],
    limit: int,
    output_format: str,
) -> None:
    """List evaluations of a category, newest first."""
    try:
        records, pairs = asyncio.run(_query_evaluations(get_settings(), category, language_pair))
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if model_id is not None:
        records = [r for r in records if r.model_id == model_id]
    shown = records[:limit]

    if output_format == "json":
        data = {"language_pairs": pairs, "evaluations": [r.to_row() for r in shown]}
        click.echo(json.dumps(data, indent=2))
        return

    if not records:
        click.echo(f"No evaluations found for category: {category}")
        if pairs:
            click.echo(f"Language pairs with evaluations: {', '.join(pairs)}")
        return

    click.echo()
    click.echo(f"Evaluations: {category} ({len(shown)} of {len(records)})")
    click.echo(f"Language pairs: {', '.join(pairs)}")
    click.echo("=" * 100)
    click.echo(f"  {'ID':<38} {'When':<17} {'Model':<28} {'Score':<7} {'Status'}")
    for r in shown:
        status = r.error_type.value if r.error_type else "ok"
        click.echo(
            f"  {r.id[:38]:<38} {r.timestamp:%Y-%m-%d %H:%M}  {r.model_id[:28]:<28} "
            f"{r.score:<7.1f} {status}"
        )
    click.echo()


async def _get_evaluation(settings: LabSettings, evaluation_id: str) -> Optional[EvaluationRecord]:
    stores = await build_stores(settings)
    try:
        return await stores.evaluations.get(evaluation_id)
    finally:
        await close_database()


def _print_block(title: str, text: str) -> None:
    click.echo(f"{title}:")
    for line in (text or "-").splitlines() or ["-"]:
        click.echo(f"  {line}")


def _print_evaluation(record: EvaluationRecord) -> None:
    key = BindingKey(record.category, record.sub_level)
    click.echo(f"Evaluation {record.id}")
    click.echo(f"  when:      {record.timestamp.isoformat()}")
    click.echo(f"  category:  {key} ({record.language_pair})")
    click.echo(f"  model:     {record.model_name} ({record.model_id})")
    click.echo(f"  baseline:  {record.baseline_model_name} ({record.baseline_model_id})")
    click.echo(f"  judge:     {record.judge_model_name} ({record.judge_model_id})")
    click.echo(f"  score:     {record.score:.1f}  time: {record.response_time_seconds:.2f}s")
    if record.is_error:
        click.echo(f"  error:     [{record.error_type.value}] {record.error}")
    click.echo()
    _print_block("Test input", record.test_input)
    _print_block("Baseline output", record.baseline_output)
    _print_block("Model output", record.model_output)
    if record.detailed_scores:
        click.echo("Sub-scores:")
        for name, sub in record.detailed_scores.items():
            reason = f"  {sub.reason}" if sub.reason else ""
            click.echo(f"  {name:<24} {sub.score:g}{reason}")
    if record.evaluation_notes:
        _print_block("Notes", record.evaluation_notes)


@evaluations.command(name="show")
@click.argument("evaluation_id")
@click.option(
    "--format",
    "output_format",
    default="text",
    type=click.Choice(["text", "json"]),
    help="Output format.",
)
def evaluations_show(evaluation_id: str, output_format: str) -> None:
    """Show one evaluation in full: outputs, sub-scores and error."""
    try:
        record = asyncio.run(_get_evaluation(get_settings(), evaluation_id))
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if record is None:
        click.echo(f"Evaluation not found: {evaluation_id}", err=True)
        sys.exit(1)

    if output_format == "json":
        click.echo(json.dumps(record.to_row(), indent=2))
    else:
        _print_evaluation(record)


# ---------------------------------------------------------------------------
# templates commands
# ---------------------------------------------------------------------------


@cli.group()
def templates() -> None:
    """Browse and add prompt templates."""


@templates.command(name="list")
@click.option("--category", default=None, help=CATEGORY_HELP, shell_complete=_complete_category)
@click.option("--sub-level", default=None, help=SUB_LEVEL_HELP, shell_complete=_complete_sub_level)
def templates_list(category: Optional[str], sub_level: Optional[str]) -> None:
    """List saved templates."""

    async def _list():
        stores = await build_stores(get_settings())
        try:
            catalog = TemplateCatalog(stores.templates)
            everything = await catalog.refresh()
        finally:
            await close_database()
        if category is not None:
            return catalog.for_category(category, sub_level)
        return [t for t in everything if sub_level is None or t.sub_level == sub_level]

    try:
        found = asyncio.run(_list())
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not found:
        click.echo("No templates found.")
        return

    click.echo(f"  {'ID':<38} {'Category':<20} {'Name'}")
    for t in found:
        category_label = str(BindingKey(t.category, t.sub_level))
        click.echo(f"  {t.id:<38} {category_label:<20} {t.name}")


@templates.command(name="save")
@click.option("--name", required=True)
@click.option("--category", required=True, help=CATEGORY_HELP, shell_complete=_complete_category)
@click.option("--sub-level", default=None, help=SUB_LEVEL_HELP, shell_complete=_complete_sub_level)
@click.option("--system-prompt", default="", help="System prompt text.")
@click.option("--user-prompt", default="", help="User prompt text.")
@click.option("--description", default=None)
def templates_save(
    name: str,
    category: str,
    sub_level: Optional[str],
    system_prompt: str,
    user_prompt: str,
    description: Optional[str],
) -> None:
    """Save a new prompt template. Existing templates are never modified."""
    _check_sub_level(category, sub_level)
    if not system_prompt and not user_prompt:
        click.echo("Error: provide --system-prompt and/or --user-prompt", err=True)
        sys.exit(2)

    async def _save():
        stores = await build_stores(get_settings())
        try:
            return await stores.templates.save(
                name=name,
                category=category,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                sub_level=sub_level,
                description=description,
            )
        finally:
            await close_database()

    try:
        template = asyncio.run(_save())
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Saved template {template.id} ({template.name})")

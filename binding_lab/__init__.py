"""
Model evaluation and binding selection for the language-learning assistant.

This package benchmarks candidate LLM configurations against a trusted
baseline model using an automated judge, keeps an append-only ledger of every
evaluation, and ranks candidates by quality and cost to pick the production
model bindings for each task category.

Usage:
    python -m binding_lab <command> [OPTIONS]

Modules:
    config      - Settings loaded from environment variables / .env
    models      - Pydantic data models (ModelDescriptor, EvaluationRecord, ...)
    errors      - Exception taxonomy shared by every stage
    normalizer  - Judge response cleanup and JSON parsing
    judge       - Prompt substitution and judge scoring
    runner      - Evaluation run orchestrator (baseline, candidates, judge)
    services    - Provider client, catalog, fallback invoker and stores
    pipeline    - Aggregation, ranking, binding selection, tracking and CLI
"""

__version__ = "0.1.0"

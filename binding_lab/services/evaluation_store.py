"""Append-only evaluation ledger.

Records are written once and never updated or deleted; corrections are new
records. Both backends accept concurrent appends from the candidate worker
pool.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional, Protocol

import asyncpg
import structlog

from binding_lab.errors import StoreError
from binding_lab.models import EvaluationRecord

logger = structlog.get_logger(__name__)

_COLUMNS = (
    "id",
    "timestamp",
    "category",
    "sub_level",
    "test_input",
    "source_lang",
    "target_lang",
    "baseline_model_id",
    "baseline_model_name",
    "baseline_output",
    "model_id",
    "model_name",
    "model_output",
    "response_time_seconds",
    "judge_model_id",
    "judge_model_name",
    "model_prompt",
    "judge_prompt",
    "score",
    "detailed_scores",
    "evaluation_notes",
    "error",
    "error_type",
)


class EvaluationStore(Protocol):
    async def append(self, record: EvaluationRecord) -> None: ...

    async def query(
        self, category: str, *, language_pair: Optional[str] = None
    ) -> list[EvaluationRecord]: ...

    async def get(self, evaluation_id: str) -> Optional[EvaluationRecord]: ...


def _newest_first(records: list[EvaluationRecord]) -> list[EvaluationRecord]:
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


class LocalEvaluationStore:
    """JSON-lines ledger on the local filesystem.

    Each record is one line written with a single ``write`` under a lock, so
    concurrent appends never interleave. The file is never rewritten.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._ids: Optional[set[str]] = None

    def _read_all(self) -> list[EvaluationRecord]:
        if not self.path.exists():
            return []

        try:
            raw_lines = self.path.read_bytes().splitlines()
        except OSError as e:
            raise StoreError(f"Failed to read evaluations: {e}") from e

        records = []
        for line_number, raw in enumerate(raw_lines, start=1):
            try:
                line = raw.decode("utf-8").strip()
                if not line:
                    continue
                records.append(EvaluationRecord.from_row(json.loads(line)))
            except (UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
                logger.warning(
                    "evaluation_line_skipped",
                    path=str(self.path),
                    line=line_number,
                    error=str(e),
                )
        return records

    async def append(self, record: EvaluationRecord) -> None:
        line = json.dumps(record.to_row(), ensure_ascii=False) + "\n"
        async with self._lock:
            if self._ids is None:
                self._ids = {r.id for r in self._read_all()}
            if record.id in self._ids:
                raise StoreError(f"Evaluation {record.id} already exists")

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
                    f.flush()
            except OSError as e:
                raise StoreError(f"Failed to append evaluation: {e}") from e

            self._ids.add(record.id)

        logger.debug("evaluation_appended", evaluation_id=record.id, model_id=record.model_id)

    async def query(
        self, category: str, *, language_pair: Optional[str] = None
    ) -> list[EvaluationRecord]:
        async with self._lock:
            records = self._read_all()

        result = [r for r in records if r.category == category]
        if language_pair is not None:
            result = [r for r in result if r.language_pair == language_pair]
        return _newest_first(result)

    async def get(self, evaluation_id: str) -> Optional[EvaluationRecord]:
        async with self._lock:
            records = self._read_all()
        return next((r for r in records if r.id == evaluation_id), None)


class PostgresEvaluationStore:
    """Ledger in the ``model_evaluations`` table (see migrations/)."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def append(self, record: EvaluationRecord) -> None:
        row = record.to_row()
        row["timestamp"] = record.timestamp
        row["detailed_scores"] = json.dumps(row["detailed_scores"])

        placeholders = ", ".join(
            f"${i}::jsonb" if column == "detailed_scores" else f"${i}"
            for i, column in enumerate(_COLUMNS, start=1)
        )
        sql = f"INSERT INTO model_evaluations ({', '.join(_COLUMNS)}) VALUES ({placeholders})"

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(sql, *(row[column] for column in _COLUMNS))
        except asyncpg.UniqueViolationError as e:
            raise StoreError(f"Evaluation {record.id} already exists") from e
        except asyncpg.PostgresError as e:
            logger.error("evaluation_insert_failed", evaluation_id=record.id, error=str(e))
            raise StoreError(f"Failed to append evaluation: {e}") from e

        logger.debug("evaluation_appended", evaluation_id=record.id, model_id=record.model_id)

    async def query(
        self, category: str, *, language_pair: Optional[str] = None
    ) -> list[EvaluationRecord]:
        sql = f"SELECT {', '.join(_COLUMNS)} FROM model_evaluations WHERE category = $1"
        args: list = [category]
        if language_pair is not None:
            source_lang, _, target_lang = language_pair.partition(">")
            sql += " AND source_lang = $2 AND target_lang = $3"
            args += [source_lang, target_lang]
        sql += " ORDER BY timestamp DESC"

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(sql, *args)
        except asyncpg.PostgresError as e:
            logger.error("evaluation_query_failed", category=category, error=str(e))
            raise StoreError(f"Failed to query evaluations: {e}") from e

        return [self._from_row(row) for row in rows]

    async def get(self, evaluation_id: str) -> Optional[EvaluationRecord]:
        sql = f"SELECT {', '.join(_COLUMNS)} FROM model_evaluations WHERE id = $1"
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(sql, evaluation_id)
        except asyncpg.PostgresError as e:
            logger.error("evaluation_get_failed", evaluation_id=evaluation_id, error=str(e))
            raise StoreError(f"Failed to load evaluation: {e}") from e
        return self._from_row(row) if row else None

    @staticmethod
    def _from_row(row) -> EvaluationRecord:
        data = dict(row)
        if isinstance(data.get("detailed_scores"), str):
            data["detailed_scores"] = json.loads(data["detailed_scores"])
        data["detailed_scores"] = data.get("detailed_scores") or {}
        return EvaluationRecord.from_row(data)

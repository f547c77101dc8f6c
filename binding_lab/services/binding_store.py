"""Production binding persistence, keyed by (category, sub_level)."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional, Protocol

import asyncpg
import structlog

from binding_lab.errors import StoreError
from binding_lab.models import BindingConfig, BindingKey

logger = structlog.get_logger(__name__)


class BindingStore(Protocol):
    async def get(self, key: BindingKey) -> Optional[BindingConfig]: ...

    async def list(self) -> list[BindingConfig]: ...

    async def save(self, config: BindingConfig) -> BindingConfig: ...


def _sorted(configs) -> list[BindingConfig]:
    return sorted(configs, key=lambda c: (c.category, c.sub_level or ""))


class LocalBindingStore:
    """Bindings kept in one JSON object, keyed by ``category[/sub_level]``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, BindingConfig]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read bindings: {e}") from e
        return {key: BindingConfig.model_validate(value) for key, value in raw.items()}

    async def get(self, key: BindingKey) -> Optional[BindingConfig]:
        async with self._lock:
            return self._read().get(str(key))

    async def list(self) -> list[BindingConfig]:
        async with self._lock:
            configs = self._read()
        return _sorted(configs.values())

    async def save(self, config: BindingConfig) -> BindingConfig:
        async with self._lock:
            configs = self._read()
            configs[str(config.key)] = config
            payload = {key: value.model_dump(mode="json") for key, value in configs.items()}
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(".tmp")
                tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
                tmp_path.replace(self.path)
            except OSError as e:
                raise StoreError(f"Failed to save binding: {e}") from e

        logger.info(
            "binding_saved",
            binding=str(config.key),
            primary_model_id=config.primary_model_id,
            fallback_count=len(config.fallback_model_ids),
        )
        return config


class PostgresBindingStore:
    """Bindings in the ``model_bindings`` table."""

    _SELECT = (
        "SELECT category, NULLIF(sub_level, '') AS sub_level, primary_model_id, "
        "fallback_model_ids, prompt_template_id, temperature, max_tokens, updated_at "
        "FROM model_bindings"
    )

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @staticmethod
    def _from_row(row) -> BindingConfig:
        data = dict(row)
        data["fallback_model_ids"] = list(data.get("fallback_model_ids") or [])
        return BindingConfig.model_validate(data)

    async def get(self, key: BindingKey) -> Optional[BindingConfig]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"{self._SELECT} WHERE category = $1 AND sub_level = $2",
                key.category,
                key.sub_level or "",
            )
        return self._from_row(row) if row else None

    async def list(self) -> list[BindingConfig]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"{self._SELECT} ORDER BY category, sub_level")
        return [self._from_row(row) for row in rows]

    async def save(self, config: BindingConfig) -> BindingConfig:
        # sub_level is stored as '' for "no sub-level" so the composite key is unique.
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO model_bindings
                        (category, sub_level, primary_model_id, fallback_model_ids,
                         prompt_template_id, temperature, max_tokens, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    ON CONFLICT (category, sub_level) DO UPDATE SET
                        primary_model_id = EXCLUDED.primary_model_id,
                        fallback_model_ids = EXCLUDED.fallback_model_ids,
                        prompt_template_id = EXCLUDED.prompt_template_id,
                        temperature = EXCLUDED.temperature,
                        max_tokens = EXCLUDED.max_tokens,
                        updated_at = EXCLUDED.updated_at
                    """,
                    config.category,
                    config.sub_level or "",
                    config.primary_model_id,
                    config.fallback_model_ids,
                    config.prompt_template_id,
                    config.temperature,
                    config.max_tokens,
                    config.updated_at,
                )
        except asyncpg.PostgresError as e:
            logger.error("binding_save_failed", binding=str(config.key), error=str(e))
            raise StoreError(f"Failed to save binding: {e}") from e

        logger.info(
            "binding_saved",
            binding=str(config.key),
            primary_model_id=config.primary_model_id,
            fallback_count=len(config.fallback_model_ids),
        )
        return config

"""Prompt template persistence and the injected template cache.

Templates are only ever added. A template referenced by a stored evaluation
must stay byte-identical, so there is no update or delete operation.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional, Protocol
from uuid import uuid4

import asyncpg
import structlog

from binding_lab.errors import StoreError
from binding_lab.models import PromptTemplate

logger = structlog.get_logger(__name__)


class TemplateStore(Protocol):
    async def list(self, category: Optional[str] = None) -> list[PromptTemplate]: ...

    async def get(self, template_id: str) -> Optional[PromptTemplate]: ...

    async def save(
        self,
        name: str,
        category: str,
        system_prompt: str = "",
        user_prompt: str = "",
        sub_level: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PromptTemplate: ...


class LocalTemplateStore:
    """Templates kept in a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> list[PromptTemplate]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read templates: {e}") from e
        return [PromptTemplate.model_validate(item) for item in raw]

    async def list(self, category: Optional[str] = None) -> list[PromptTemplate]:
        async with self._lock:
            templates = self._read()
        if category is not None:
            templates = [t for t in templates if t.category == category]
        return sorted(templates, key=lambda t: t.name.lower())

    async def get(self, template_id: str) -> Optional[PromptTemplate]:
        async with self._lock:
            templates = self._read()
        return next((t for t in templates if t.id == template_id), None)

    async def save(
        self,
        name: str,
        category: str,
        system_prompt: str = "",
        user_prompt: str = "",
        sub_level: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PromptTemplate:
        template = PromptTemplate(
            id=str(uuid4()),
            name=name,
            category=category,
            sub_level=sub_level,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            description=description,
        )
        async with self._lock:
            templates = self._read()
            templates.append(template)
            payload = [t.model_dump(mode="json") for t in templates]
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(".tmp")
                tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
                tmp_path.replace(self.path)
            except OSError as e:
                raise StoreError(f"Failed to save template: {e}") from e

        logger.info("template_saved", template_id=template.id, category=category, name=name)
        return template


class PostgresTemplateStore:
    """Templates in the ``prompt_templates`` table."""

    _SELECT = (
        "SELECT id::text AS id, name, category, sub_level, system_prompt, user_prompt, "
        "description, created_at FROM prompt_templates"
    )

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @staticmethod
    def _from_row(row) -> PromptTemplate:
        data = dict(row)
        data["system_prompt"] = data.get("system_prompt") or ""
        data["user_prompt"] = data.get("user_prompt") or ""
        return PromptTemplate.model_validate(data)

    async def list(self, category: Optional[str] = None) -> list[PromptTemplate]:
        async with self.pool.acquire() as conn:
            if category is None:
                rows = await conn.fetch(f"{self._SELECT} ORDER BY name")
            else:
                rows = await conn.fetch(f"{self._SELECT} WHERE category = $1 ORDER BY name", category)
        return [self._from_row(row) for row in rows]

    async def get(self, template_id: str) -> Optional[PromptTemplate]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"{self._SELECT} WHERE id::text = $1", template_id)
        return self._from_row(row) if row else None

    async def save(
        self,
        name: str,
        category: str,
        system_prompt: str = "",
        user_prompt: str = "",
        sub_level: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PromptTemplate:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO prompt_templates
                        (name, category, sub_level, system_prompt, user_prompt, description)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING id::text AS id, name, category, sub_level, system_prompt,
                              user_prompt, description, created_at
                    """,
                    name,
                    category,
                    sub_level,
                    system_prompt or None,
                    user_prompt or None,
                    description,
                )
        except asyncpg.PostgresError as e:
            logger.error("template_save_failed", name=name, error=str(e))
            raise StoreError(f"Failed to save template: {e}") from e

        template = self._from_row(row)
        logger.info("template_saved", template_id=template.id, category=category, name=name)
        return template


class TemplateCatalog:
    """Injected read cache over a TemplateStore with explicit refresh."""

    def __init__(self, store: TemplateStore):
        self.store = store
        self._templates: Optional[dict[str, PromptTemplate]] = None

    async def refresh(self) -> list[PromptTemplate]:
        templates = await self.store.list()
        self._templates = {t.id: t for t in templates}
        return templates

    def _loaded(self) -> dict[str, PromptTemplate]:
        if self._templates is None:
            raise RuntimeError("Template catalog not loaded. Call refresh() first.")
        return self._templates

    def get(self, template_id: str) -> Optional[PromptTemplate]:
        return self._loaded().get(template_id)

    def for_category(
        self, category: str, sub_level: Optional[str] = None
    ) -> list[PromptTemplate]:
        """Templates of a category; with a sub-level, only that level's templates."""
        templates = [t for t in self._loaded().values() if t.category == category]
        if sub_level is not None:
            templates = [t for t in templates if t.sub_level == sub_level]
        return sorted(templates, key=lambda t: t.name.lower())

    async def save(self, **kwargs) -> PromptTemplate:
        """Save a new template through the store and add it to the cache."""
        template = await self.store.save(**kwargs)
        if self._templates is not None:
            self._templates[template.id] = template
        return template

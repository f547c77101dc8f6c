"""Model catalog loading, caching and browsing helpers."""

from typing import Awaitable, Callable, Iterable, Optional

import httpx
import structlog

from binding_lab.errors import NotFound, ProviderError
from binding_lab.models import ModelDescriptor

logger = structlog.get_logger(__name__)

CatalogLoader = Callable[[], Awaitable[list[ModelDescriptor]]]


async def fetch_catalog(
    base_url: str = "https://openrouter.ai/api/v1",
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ModelDescriptor]:
    """Fetch the model list from the provider's ``/models`` endpoint.

    Malformed entries are skipped rather than failing the whole catalog.

    Raises:
        ProviderError: If the endpoint is unreachable or answers non-2xx.
    """
    url = f"{base_url.rstrip('/')}/models"
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout), transport=transport
        ) as client:
            response = await client.get(url, headers={"Content-Type": "application/json"})
    except httpx.TimeoutException as e:
        raise ProviderError("catalog", f"Catalog request timed out: {e}") from e
    except httpx.HTTPError as e:
        raise ProviderError("catalog", f"Catalog request failed: {e}") from e

    if response.status_code != 200:
        raise ProviderError(
            "catalog",
            f"Failed to fetch models: HTTP {response.status_code}",
            status_code=response.status_code,
        )

    models: list[ModelDescriptor] = []
    for entry in response.json().get("data") or []:
        try:
            models.append(ModelDescriptor.from_catalog_entry(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("catalog_entry_skipped", entry_id=entry.get("id"), error=str(e))

    logger.info("catalog_fetched", model_count=len(models))
    return models


class ModelCatalog:
    """Session cache over the model catalog.

    The cache is filled and replaced only by an explicit ``refresh()``;
    nothing invalidates it automatically.
    """

    def __init__(self, loader: CatalogLoader):
        self._loader = loader
        self._models: Optional[dict[str, ModelDescriptor]] = None

    @property
    def is_loaded(self) -> bool:
        return self._models is not None

    async def refresh(self) -> list[ModelDescriptor]:
        models = await self._loader()
        self._models = {model.id: model for model in models}
        return list(self._models.values())

    def _loaded(self) -> dict[str, ModelDescriptor]:
        if self._models is None:
            raise RuntimeError("Model catalog not loaded. Call refresh() first.")
        return self._models

    def all(self) -> list[ModelDescriptor]:
        return list(self._loaded().values())

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._loaded().get(model_id)

    def require(self, model_id: str) -> ModelDescriptor:
        """Return the descriptor or raise NotFound."""
        model = self.get(model_id)
        if model is None:
            raise NotFound(model_id)
        return model

    def display_name(self, model_id: str) -> str:
        """Catalog name for a model id, falling back to the id itself."""
        if self._models is None:
            return model_id
        model = self._models.get(model_id)
        return model.name if model else model_id


def filter_models(
    models: Iterable[ModelDescriptor],
    *,
    text_only: bool = False,
    exclude_reasoning: bool = False,
    exclude_free: bool = False,
    search: str = "",
) -> list[ModelDescriptor]:
    """Apply the operator's catalog browsing filters."""
    needle = search.strip().lower()
    result = []
    for model in models:
        if text_only and not model.is_text_only:
            continue
        if exclude_reasoning and model.has_reasoning_cost:
            continue
        if exclude_free and model.is_free:
            continue
        if needle and needle not in model.name.lower() and needle not in model.id.lower():
            continue
        result.append(model)
    return result


def sort_models(models: Iterable[ModelDescriptor], by: str = "name") -> list[ModelDescriptor]:
    """Sort by display name (case-insensitive) or by total unit cost."""
    if by == "cost":
        return sorted(models, key=lambda m: (m.total_unit_cost, m.name.lower()))
    if by == "name":
        return sorted(models, key=lambda m: m.name.lower())
    raise ValueError(f"Unknown sort key: {by}")


def format_cost(cost_per_token: float) -> str:
    """Format a per-token price as dollars per 1K tokens."""
    cost = cost_per_token * 1000
    if cost == 0:
        return "Free"
    if cost < 0.001:
        return f"${cost:.5f}"
    if cost < 0.01:
        return f"${cost:.4f}"
    if cost < 1:
        return f"${cost:.3f}"
    return f"${cost:.2f}"


def format_context_length(context_length: int) -> str:
    """Format a context window, e.g. 128000 -> '128K', 1048576 -> '1.0M'."""
    if context_length >= 1_000_000:
        return f"{context_length / 1_000_000:.1f}M"
    if context_length >= 1000:
        return f"{context_length / 1000:.0f}K"
    return str(context_length)

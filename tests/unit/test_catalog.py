"""Unit tests for catalog loading, caching and browsing helpers."""

import httpx
import pytest

from binding_lab.errors import NotFound, ProviderError
from binding_lab.services.catalog import (
    ModelCatalog,
    fetch_catalog,
    filter_models,
    format_context_length,
    format_cost,
    sort_models,
)
from helpers import make_model

FEED = {
    "data": [
        {
            "id": "openai/gpt-4o-mini",
            "name": "OpenAI: GPT-4o-mini",
            "context_length": 128000,
            "pricing": {"prompt": "0.00000015", "completion": "0.0000006"},
            "architecture": {"modality": "text->text", "input_modalities": ["text"], "output_modalities": ["text"]},
        },
        {
            "id": "mistralai/mistral-7b-instruct:free",
            "name": "Mistral 7B Instruct (free)",
            "context_length": 32768,
            "pricing": {"prompt": "0", "completion": "0"},
        },
        {"name": "entry without an id"},
    ]
}


def _transport(status: int = 200, payload=None, calls: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        return httpx.Response(status, json=payload if payload is not None else FEED)

    return httpx.MockTransport(handler)


class TestFetchCatalog:
    """Tests for fetching the /models feed."""

    @pytest.mark.asyncio
    async def test_parses_entries_and_skips_malformed(self):
        calls: list[str] = []
        models = await fetch_catalog(
            "https://openrouter.ai/api/v1/", transport=_transport(calls=calls)
        )

        assert calls == ["https://openrouter.ai/api/v1/models"]
        assert [m.id for m in models] == ["openai/gpt-4o-mini", "mistralai/mistral-7b-instruct:free"]
        assert models[0].prompt_cost_per_token == pytest.approx(0.00000015)
        assert models[1].is_free

    @pytest.mark.asyncio
    async def test_non_200_is_provider_error(self):
        with pytest.raises(ProviderError) as exc_info:
            await fetch_catalog(transport=_transport(status=503, payload={"error": "down"}))
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_failure_is_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(ProviderError, match="Catalog request failed"):
            await fetch_catalog(transport=httpx.MockTransport(handler))


class TestModelCatalog:
    """Tests for the session cache."""

    @pytest.mark.asyncio
    async def test_refresh_is_explicit(self):
        loads = []
        models = [make_model("a/one", "One")]

        async def loader():
            loads.append(1)
            return models

        catalog = ModelCatalog(loader)
        assert not catalog.is_loaded
        with pytest.raises(RuntimeError):
            catalog.all()

        await catalog.refresh()
        catalog.get("a/one")
        catalog.all()
        assert len(loads) == 1

        models.append(make_model("a/two", "Two"))
        assert catalog.get("a/two") is None
        await catalog.refresh()
        assert catalog.get("a/two").name == "Two"
        assert len(loads) == 2

    @pytest.mark.asyncio
    async def test_require_and_display_name(self):
        async def loader():
            return [make_model("a/one", "One")]

        catalog = ModelCatalog(loader)
        assert catalog.display_name("a/one") == "a/one"

        await catalog.refresh()
        assert catalog.require("a/one").name == "One"
        assert catalog.display_name("a/one") == "One"
        assert catalog.display_name("a/gone") == "a/gone"
        with pytest.raises(NotFound):
            catalog.require("a/gone")


class TestBrowsingHelpers:
    def _models(self):
        return [
            make_model("b/vision", "Vision", modality="text+image->text", modality_tags=["text", "image"]),
            make_model("a/cheap", "cheap text", 0.0000001, 0.0000001),
            make_model("c/free", "Free One", 0.0, 0.0),
            make_model("d/thinker", "Thinker", reasoning_cost_per_token=0.00001),
        ]

    def test_filters(self):
        models = self._models()
        assert [m.id for m in filter_models(models, text_only=True)] == ["a/cheap", "c/free", "d/thinker"]
        assert "d/thinker" not in [m.id for m in filter_models(models, exclude_reasoning=True)]
        assert "c/free" not in [m.id for m in filter_models(models, exclude_free=True)]
        assert [m.id for m in filter_models(models, search="VIS")] == ["b/vision"]
        assert [m.id for m in filter_models(models, search="c/fr")] == ["c/free"]

    def test_sort_by_name_and_cost(self):
        models = self._models()
        assert [m.id for m in sort_models(models)] == ["a/cheap", "c/free", "d/thinker", "b/vision"]
        assert [m.id for m in sort_models(models, by="cost")][:2] == ["c/free", "a/cheap"]

    def test_unknown_sort_key(self):
        with pytest.raises(ValueError):
            sort_models([], by="speed")

    @pytest.mark.parametrize(
        "cost_per_token, expected",
        [
            (0.0, "Free"),
            (0.0000001, "$0.00010"),
            (0.000003, "$0.0030"),
            (0.00006, "$0.060"),
            (0.002, "$2.00"),
        ],
    )
    def test_format_cost(self, cost_per_token, expected):
        assert format_cost(cost_per_token) == expected

    @pytest.mark.parametrize(
        "length, expected", [(512, "512"), (128000, "128K"), (1048576, "1.0M")]
    )
    def test_format_context_length(self, length, expected):
        assert format_context_length(length) == expected

# tests/unit/rag/test_unit_chromadb_store.py — v1
"""Tests for rag/vector_store/chromadb_store.py and its factory (mock client)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from ragtiers.rag.vector_store.chromadb_store import ChromaDBStore, to_where
from ragtiers.rag.vector_store.vector_store_factory import create_vector_store, parse_host_port


@pytest.fixture
def collection():
    col = MagicMock()
    col.query.return_value = {
        "ids": [["c2", "c1"]],
        "documents": [["texto dos", "texto uno"]],
        "metadatas": [[
            {"source_file_name": "brochure.pdf", "page": "4", "chunk": 1},
            {"source_file_name": "precios.pdf", "page": 2, "text": "texto completo uno"},
        ]],
        "distances": [[0.4, 0.1]],
    }
    col.count.return_value = 7
    return col


@pytest.fixture
def store(collection):
    client = MagicMock()
    client.get_or_create_collection.return_value = collection
    return ChromaDBStore(client=client)


class TestToWhere:
    def test_empty(self):
        assert to_where(None) is None
        assert to_where({}) is None

    def test_single_key(self):
        assert to_where({"development": "fuego"}) == {"development": "fuego"}

    def test_multiple_keys(self):
        assert to_where({"development": "fuego", "type": "price"}) == {
            "$and": [{"development": "fuego"}, {"type": "price"}]
        }


class TestChromaDBStore:
    @pytest.mark.asyncio
    async def test_query_maps_results(self, store, collection):
        matches = await store.query(
            "quintana_roo", "precio lote", top_k=2, filter={"development": "fuego"}
        )
        assert [m.id for m in matches] == ["c1", "c2"]
        assert matches[0].score == pytest.approx(0.9)
        assert matches[0].text == "texto completo uno"
        assert matches[0].filename == "precios.pdf"
        assert matches[1].page == 4
        assert matches[1].chunk == 1

        kwargs = collection.query.call_args.kwargs
        assert kwargs["query_texts"] == ["precio lote"]
        assert kwargs["n_results"] == 2
        assert kwargs["where"] == {"development": "fuego"}

    @pytest.mark.asyncio
    async def test_filename_metadata_keys(self, store, collection):
        collection.query.return_value = {
            "ids": [["a", "b", "c"]],
            "documents": [["uno", "dos", "tres"]],
            "metadatas": [[
                {"sourceFileName": "reglamento_fuego.pdf"},
                {"source_file_name": "precios.pdf", "sourceFileName": "viejo.pdf"},
                {},
            ]],
            "distances": [[0.1, 0.2, 0.3]],
        }
        matches = await store.query("quintana_roo", "reglamento")
        assert [m.filename for m in matches] == [
            "reglamento_fuego.pdf", "precios.pdf", "Documento desconocido",
        ]

    @pytest.mark.asyncio
    async def test_query_without_filter(self, store, collection):
        await store.query("quintana_roo", "precio")
        assert "where" not in collection.query.call_args.kwargs

    @pytest.mark.asyncio
    async def test_empty_results(self, store, collection):
        collection.query.return_value = {"ids": [[]], "documents": [[]], "metadatas": [[]], "distances": [[]]}
        assert await store.query("quintana_roo", "nada") == []

    @pytest.mark.asyncio
    async def test_upsert_and_count(self, store, collection):
        await store.upsert("quintana_roo", ["c1"], ["texto"], [{"development": "fuego"}])
        collection.upsert.assert_called_once_with(
            ids=["c1"], documents=["texto"], metadatas=[{"development": "fuego"}]
        )
        assert await store.count("quintana_roo") == 7
        assert store.provider_name == "chromadb"


class TestVectorStoreFactory:
    @pytest.mark.parametrize("url, expected", [
        ("http://chroma:8001", ("chroma", 8001)),
        ("chroma:9000/api", ("chroma", 9000)),
        ("https://chroma.internal", ("chroma.internal", 8000)),
    ])
    def test_parse_host_port(self, url, expected):
        assert parse_host_port(url) == expected

    def test_remote(self, settings):
        remote = settings.model_copy(update={"vector_db_url": "http://chroma:8001"})
        with patch("chromadb.HttpClient") as http_client:
            store = create_vector_store(remote)
        http_client.assert_called_once_with(host="chroma", port=8001)
        assert isinstance(store, ChromaDBStore)

    def test_persistent(self, settings):
        with patch("chromadb.PersistentClient") as persistent:
            create_vector_store(settings)
        persistent.assert_called_once_with(path=str(settings.vector_db_path))

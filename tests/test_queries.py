"""
Tests for the query collaborator.

Tests:
- Update detection
- Result shape classification
- SPARQL JSON conversion
- HttpQueryService requests and failures
"""

from urllib.parse import parse_qs

import httpx
import pytest

from gsn_diagram.exceptions import QueryExecutionError
from gsn_diagram.queries import (
    HttpQueryService,
    ResultKind,
    ResultShape,
    bindings_to_rows,
    classify_rows,
    first_keyword,
    is_update_query,
    term_to_display,
)

ENDPOINT = "http://sparql.test/query"
UPDATE_ENDPOINT = "http://sparql.test/update"

SELECT_RESPONSE = {
    "head": {"vars": ["s", "p", "o"]},
    "results": {"bindings": [
        {
            "s": {"type": "uri", "value": "http://ex.org/G1"},
            "p": {"type": "uri", "value": "https://w3id.org/OntoGSN/ontology#supportedBy"},
            "o": {"type": "uri", "value": "http://ex.org/S1"},
        },
    ]},
}


def service_with(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpQueryService(ENDPOINT, client=client, **kwargs)


class TestUpdateDetection:
    """First-keyword classification."""

    def test_skips_prologue(self):
        text = """
        # remove stale marks
        PREFIX gsn: <https://w3id.org/OntoGSN/ontology#>
        base <http://ex.org/>

        delete where { ?s gsn:mark ?o }
        """
        assert first_keyword(text) == "DELETE"
        assert is_update_query(text)

    @pytest.mark.parametrize("text", [
        "INSERT DATA { <a> <b> <c> }",
        "LOAD <http://ex.org/data.ttl>",
        "clear graph <g>",
        "DROP SILENT GRAPH <g>",
    ])
    def test_update_keywords(self, text):
        assert is_update_query(text)

    @pytest.mark.parametrize("text", [
        "SELECT * WHERE { ?s ?p ?o }",
        "PREFIX x: <y>\nASK { ?s ?p ?o }",
        "",
        "# only a comment",
    ])
    def test_reads(self, text):
        assert not is_update_query(text)


class TestClassification:
    """Column-based result shapes."""

    def test_shapes(self):
        assert classify_rows([]) == ResultShape.EMPTY
        assert classify_rows([{"s": 1, "p": 2, "o": 3, "typeS": 4}]) == ResultShape.SCENE
        assert classify_rows([{"ctx": 1, "clt": 2, "item": 3, "s": 4, "p": 5, "o": 6}]) == ResultShape.COLLECTIONS
        assert classify_rows([{"s": 1}]) == ResultShape.HIGHLIGHT
        assert classify_rows([{"s": 1, "label": 2}]) == ResultShape.HIGHLIGHT
        assert classify_rows([{"s": 1, "p": 2}]) == ResultShape.OTHER
        assert classify_rows([{"module": 1}]) == ResultShape.OTHER
        assert classify_rows(["not a row"]) == ResultShape.OTHER


class TestTermConversion:
    """SPARQL JSON terms and bindings."""

    def test_terms(self):
        assert term_to_display({"type": "uri", "value": "http://ex.org/a"}) == "http://ex.org/a"
        assert term_to_display({"type": "bnode", "value": "b0"}) == "_:b0"
        assert term_to_display({"type": "literal", "value": "hi", "xml:lang": "en"}) == '"hi"@en'
        assert term_to_display({
            "type": "literal", "value": "3",
            "datatype": "http://www.w3.org/2001/XMLSchema#integer",
        }) == '"3"^^http://www.w3.org/2001/XMLSchema#integer'
        assert term_to_display({
            "type": "literal", "value": "plain",
            "datatype": "http://www.w3.org/2001/XMLSchema#string",
        }) == "plain"
        assert term_to_display(None) == ""

    def test_bindings_to_rows(self):
        rows = bindings_to_rows(SELECT_RESPONSE)

        assert rows == [{
            "s": {"type": "uri", "value": "http://ex.org/G1"},
            "p": {"type": "uri", "value": "https://w3id.org/OntoGSN/ontology#supportedBy"},
            "o": {"type": "uri", "value": "http://ex.org/S1"},
        }]

    def test_unbound_results(self):
        assert bindings_to_rows({}) == []
        assert bindings_to_rows({"results": {"bindings": []}}) == []


class TestHttpQueryService:
    """HTTP transport."""

    @pytest.mark.asyncio
    async def test_select(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=SELECT_RESPONSE)

        service = service_with(handler)
        result = await service.run_text("SELECT * WHERE { ?s ?p ?o }", source="q")
        await service.aclose()

        assert result.kind == ResultKind.ROWS
        assert result.source == "q"
        assert classify_rows(result.rows) == ResultShape.SCENE
        (request,) = seen
        assert str(request.url) == ENDPOINT
        assert request.headers["accept"] == "application/sparql-results+json"
        assert parse_qs(request.content.decode())["query"] == ["SELECT * WHERE { ?s ?p ?o }"]

    @pytest.mark.asyncio
    async def test_update_goes_to_update_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        service = service_with(handler, update_endpoint=UPDATE_ENDPOINT)
        result = await service.run_text("DELETE WHERE { ?s ?p ?o }")

        assert result.kind == ResultKind.UPDATE
        assert result.rows == []
        assert str(seen[0].url) == UPDATE_ENDPOINT
        assert "update" in parse_qs(seen[0].content.decode())

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        service = service_with(lambda request: httpx.Response(500, text="parse error"))

        with pytest.raises(QueryExecutionError) as exc_info:
            await service.run_text("SELECT * WHERE {", source="broken.sparql")

        assert exc_info.value.query == "broken.sparql"
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = service_with(handler)
        with pytest.raises(QueryExecutionError) as exc_info:
            await service.run_text("SELECT * WHERE { ?s ?p ?o }")

        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        service = service_with(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(QueryExecutionError):
            await service.run_text("SELECT * WHERE { ?s ?p ?o }")

    @pytest.mark.asyncio
    async def test_run_path(self, tmp_path):
        (tmp_path / "queries").mkdir()
        (tmp_path / "queries" / "all.sparql").write_text("SELECT * WHERE { ?s ?p ?o }", encoding="utf-8")
        texts = []

        def handler(request):
            texts.append(parse_qs(request.content.decode())["query"][0])
            return httpx.Response(200, json=SELECT_RESPONSE)

        service = service_with(handler, base_dir=tmp_path)
        result = await service.run_path("queries/all.sparql")

        assert texts == ["SELECT * WHERE { ?s ?p ?o }"]
        assert result.source == "queries/all.sparql"
        assert len(result.rows) == 1

    @pytest.mark.asyncio
    async def test_missing_query_file(self, tmp_path):
        service = service_with(lambda request: httpx.Response(200, json=SELECT_RESPONSE), base_dir=tmp_path)

        with pytest.raises(QueryExecutionError) as exc_info:
            await service.fetch_query_text("nope.sparql")

        assert exc_info.value.query == "nope.sparql"

    @pytest.mark.asyncio
    async def test_context_manager_keeps_shared_client(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(204)))
        async with HttpQueryService(ENDPOINT, client=client):
            pass

        assert not client.is_closed
        await client.aclose()

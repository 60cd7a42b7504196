"""
Query collaborator - runs SPARQL and hands back plain result rows.

The diagram core only depends on the QueryService protocol. HttpQueryService
is the concrete collaborator: it talks to a SPARQL endpoint over HTTP and
reads query files from disk.
"""

import asyncio
import logging
import re
import time
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

from .config import query_dir
from .exceptions import QueryExecutionError

logger = logging.getLogger(__name__)

UPDATE_KEYWORDS = {"INSERT", "DELETE", "LOAD", "CREATE", "DROP", "CLEAR", "COPY", "MOVE", "ADD"}
XSD_STRING = "http://www.w3.org/2001/XMLSchema#string"

SCENE_COLUMNS = {"s", "p", "o"}
COLLECTION_COLUMNS = {"ctx", "clt", "item"}


class ResultKind(str, Enum):
    ROWS = "rows"
    UPDATE = "update"


class ResultShape(str, Enum):
    """What a row set means to the diagram."""
    SCENE = "scene"              # s, p, o[, typeS, typeO]
    COLLECTIONS = "collections"  # ctx, clt, item
    HIGHLIGHT = "highlight"      # s only
    OTHER = "other"              # anything else, ignored
    EMPTY = "empty"


class QueryResult(BaseModel):
    """Outcome of one query run."""
    kind: ResultKind = ResultKind.ROWS
    source: str = "inline"
    query_text: str = ""
    rows: list[dict[str, Any]] = Field(default_factory=list)
    elapsed_ms: float = 0.0


class QueryService(Protocol):
    async def run_path(self, path: str) -> QueryResult: ...

    async def run_text(self, query_text: str, source: str = "inline") -> QueryResult: ...

    async def fetch_query_text(self, path: str) -> str: ...


def classify_rows(rows: list[dict]) -> ResultShape:
    """Classify a row set by the columns of its first row."""
    if not rows:
        return ResultShape.EMPTY
    first = rows[0]
    if not isinstance(first, dict):
        return ResultShape.OTHER
    columns = set(first)
    if COLLECTION_COLUMNS <= columns:
        return ResultShape.COLLECTIONS
    if SCENE_COLUMNS <= columns:
        return ResultShape.SCENE
    if "s" in columns and "p" not in columns and "o" not in columns:
        return ResultShape.HIGHLIGHT
    return ResultShape.OTHER


def first_keyword(query_text: str) -> str:
    """First keyword of a query, skipping blanks, comments and PREFIX/BASE lines."""
    for line in str(query_text).splitlines():
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        if re.match(r"^(PREFIX|BASE)\b", text, re.IGNORECASE):
            continue
        return text.split()[0].upper()
    return ""


def is_update_query(query_text: str) -> bool:
    return first_keyword(query_text) in UPDATE_KEYWORDS


def term_to_display(term: Optional[dict]) -> str:
    """Render a SPARQL JSON term the way it is shown to users."""
    if not term:
        return ""
    value = term.get("value", "")
    kind = term.get("type")
    if kind == "bnode":
        return f"_:{value}"
    if kind in ("literal", "typed-literal"):
        lang = term.get("xml:lang")
        datatype = term.get("datatype")
        if lang:
            return f'"{value}"@{lang}'
        if datatype and datatype != XSD_STRING:
            return f'"{value}"^^{datatype}'
    return value


def bindings_to_rows(payload: dict) -> list[dict[str, dict]]:
    """Convert SPARQL JSON results into rows of {"type", "value"} cells."""
    bindings = (payload.get("results") or {}).get("bindings") or []
    rows = []
    for binding in bindings:
        rows.append({
            var: {"type": term.get("type"), "value": term_to_display(term)}
            for var, term in binding.items()
        })
    return rows


class HttpQueryService:
    """
    SPARQL over HTTP.

    Selects are POSTed to `endpoint` as form field `query`; updates go to
    `update_endpoint` (defaults to `endpoint`) as form field `update`.
    Query files are resolved against `base_dir` (GSN_DIAGRAM_QUERY_DIR).
    """

    def __init__(
        self,
        endpoint: str,
        update_endpoint: Optional[str] = None,
        base_dir: Optional[Path] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.update_endpoint = update_endpoint or endpoint
        self.base_dir = Path(base_dir) if base_dir is not None else query_dir()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "HttpQueryService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def resolve_path(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.base_dir / candidate

    async def fetch_query_text(self, path: str) -> str:
        """Read a query file."""
        try:
            return await asyncio.to_thread(self.resolve_path(path).read_text, encoding="utf-8")
        except OSError as e:
            raise QueryExecutionError(path, e) from e

    async def run_path(self, path: str) -> QueryResult:
        query_text = await self.fetch_query_text(path)
        return await self.run_text(query_text, source=path)

    async def run_text(self, query_text: str, source: str = "inline") -> QueryResult:
        """Run a query or update; updates return no rows."""
        started = time.perf_counter()
        update = is_update_query(query_text)
        try:
            if update:
                response = await self._client.post(
                    self.update_endpoint, data={"update": query_text},
                )
            else:
                response = await self._client.post(
                    self.endpoint,
                    data={"query": query_text},
                    headers={"Accept": "application/sparql-results+json"},
                )
        except httpx.HTTPError as e:
            raise QueryExecutionError(source, e) from e

        if response.status_code >= 400:
            detail = response.text[:200].strip() or response.reason_phrase
            raise QueryExecutionError(source, RuntimeError(f"HTTP {response.status_code}: {detail}"))

        elapsed = (time.perf_counter() - started) * 1000
        if update:
            return QueryResult(kind=ResultKind.UPDATE, source=source, query_text=query_text, elapsed_ms=elapsed)

        try:
            payload = response.json()
        except ValueError as e:
            raise QueryExecutionError(source, e) from e

        rows = bindings_to_rows(payload)
        logger.debug("Query %s returned %d rows in %.1f ms", source, len(rows), elapsed)
        return QueryResult(source=source, query_text=query_text, rows=rows, elapsed_ms=elapsed)

"""Shared fixtures: sample relation rows, surfaces and a fake query service."""

import asyncio

import pytest

from gsn_diagram.config import QueryPaths
from gsn_diagram.events import EventBus
from gsn_diagram.exceptions import QueryExecutionError
from gsn_diagram.queries import QueryResult
from gsn_diagram.surface import DiagramSurface, SurfaceRegistry

SUPPORTED_BY = "https://w3id.org/OntoGSN/ontology#supportedBy"
IN_CONTEXT_OF = "https://w3id.org/OntoGSN/ontology#inContextOf"
CHALLENGES = "https://w3id.org/OntoGSN/ontology#challenges"


def spo(s, p, o, **extra):
    return {"s": s, "p": p, "o": o, **extra}


class FakeQueryService:
    """
    In-memory query collaborator.

    `results` maps a query path or source to rows, a QueryResult, an
    exception to raise, or a callable receiving the query text. `texts`
    maps a path to template text, or to an exception the fetch raises.
    `gates` maps a path to an asyncio.Event the query waits on before
    answering.
    """

    def __init__(self, results=None, texts=None):
        self.results = dict(results or {})
        self.texts = dict(texts or {})
        self.gates = {}
        self.calls = []

    async def run_path(self, path):
        self.calls.append(("path", path))
        return await self._answer(path, self.texts.get(path, ""))

    async def run_text(self, query_text, source="inline"):
        self.calls.append(("text", source, query_text))
        return await self._answer(source, query_text)

    async def fetch_query_text(self, path):
        self.calls.append(("fetch", path))
        if path not in self.texts:
            raise QueryExecutionError(path, FileNotFoundError(path))
        value = self.texts[path]
        if isinstance(value, Exception):
            raise value
        return value

    async def _answer(self, key, text):
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        value = self.results.get(key, [])
        if isinstance(value, Exception):
            raise value
        if isinstance(value, QueryResult):
            return value
        if callable(value):
            value = value(text)
        return QueryResult(source=key, query_text=text, rows=list(value))

    def texts_run(self):
        return [c[2] for c in self.calls if c[0] == "text"]


@pytest.fixture
def scenario_rows():
    """G1 supported by S1 supported by Sn1, G1 in context of C1."""
    return [
        spo("G1", "gsn:supportedBy", "S1"),
        spo("S1", "gsn:supportedBy", "Sn1"),
        spo("G1", "gsn:inContextOf", "C1"),
    ]


@pytest.fixture
def rich_rows():
    """A small argument with a multi-parent node, contexts and a defeater."""
    return [
        spo("G1", SUPPORTED_BY, "S1"),
        spo("S1", SUPPORTED_BY, "G2"),
        spo("S1", SUPPORTED_BY, "G3"),
        spo("G2", SUPPORTED_BY, "Sn1"),
        spo("G3", SUPPORTED_BY, "Sn1"),
        spo("G1", IN_CONTEXT_OF, "C1"),
        spo("G1", IN_CONTEXT_OF, "A1"),
        spo("D1", CHALLENGES, "G2"),
    ]


@pytest.fixture
def surface():
    return DiagramSurface(name="test-host", width=800, height=520, stylesheet="")


@pytest.fixture
def registry(surface):
    reg = SurfaceRegistry()
    reg.register(surface)
    return reg


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def paths():
    return QueryPaths()


@pytest.fixture
def fake_service():
    return FakeQueryService()


@pytest.fixture
def collect_events():
    """Subscribe to bus events and collect (name, payload) pairs."""
    def attach(event_bus, *names):
        received = []
        for name in names:
            event_bus.on(name, lambda payload, n=name: received.append((n, payload)))
        return received
    return attach


async def settle(bus=None):
    """Let scheduled tasks and async handlers run."""
    for _ in range(3):
        await asyncio.sleep(0)
    if bus is not None:
        await bus.drain()

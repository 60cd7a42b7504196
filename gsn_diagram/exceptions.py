"""
Exception types raised by the diagram core.

Malformed rows and unanchored collection groups are recovered locally and
never surface here; these cover caller-side wiring bugs and collaborator
failures.
"""


class GraphError(Exception):
    """Base class for diagram errors."""


class MountTargetError(GraphError, LookupError):
    """The mount target or drawable surface could not be resolved."""

    def __init__(self, target: object, message: str | None = None):
        self.target = target
        super().__init__(message or f'mount target "{target}" not found')


class RendererStateError(GraphError):
    """An operation was attempted in a renderer state that forbids it."""


class QueryExecutionError(GraphError):
    """A query run by the external collaborator failed."""

    def __init__(self, query: str, cause: BaseException | None = None):
        self.query = query
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Query failed ({query}){detail}")

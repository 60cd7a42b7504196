"""
Row validation - structural problems in relation rows.

Nothing reported here stops a render: the scene builder recovers from all
of it. Validation explains what the builder will do with questionable
input (skip it, break a cycle, draw an extra edge).
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from .analysis import find_cycles
from .config import RenderOptions
from .models import RelationRow


class IssueSeverity(str, Enum):
    """How much a reported problem matters."""
    ERROR = "error"      # Part of the input will not be drawn
    WARNING = "warning"  # Recovered from, worth reviewing
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """One problem found in the rows."""
    severity: IssueSeverity
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {"type": self.severity.value, "message": self.message}
        data.update({k: v for k, v in (("node_id", self.node_id), ("edge_id", self.edge_id)) if v})
        return data


def validate_rows(
    rows: Iterable[Any],
    options: "RenderOptions | dict | None" = None,
) -> list[ValidationIssue]:
    """
    Check relation rows before they are drawn.

    Reports:
    - empty input (info)
    - malformed rows, skipped by the builder (warning)
    - predicates outside every vocabulary (info)
    - self-supporting nodes and duplicate supports rows (warning)
    - supports cycles, broken during layout (warning)
    - nodes with several parents, drawn with extra edges (info)
    - contexts or defeaters attached to nodes outside the tree (error)

    Args:
        rows: Relation rows
        options: Predicate vocabularies

    Returns:
        Issues in the order they were found
    """
    opts = RenderOptions.coerce(options)
    relation_of = {}
    for relation, aliases in (
        ("supports", opts.supported_by_aliases),
        ("context", opts.context_of_aliases),
        ("defeater", opts.challenges_aliases),
    ):
        for alias in aliases:
            relation_of.setdefault(str(alias).strip(), relation)

    found: list[ValidationIssue] = []

    def report(severity, message, node_id=None, edge_id=None):
        found.append(ValidationIssue(severity, message, node_id, edge_id))

    parsed = [RelationRow.from_binding(raw) for raw in rows]
    valid = [row for row in parsed if row is not None]
    malformed = len(parsed) - len(valid)

    if not parsed:
        report(IssueSeverity.INFO, "No relation rows")
        return found
    if malformed:
        report(
            IssueSeverity.WARNING,
            f"{malformed} malformed row(s) skipped (missing subject, predicate or object)",
        )

    unknown: dict[str, None] = {}
    tree_members: dict[str, None] = {}
    parents: dict[str, list[str]] = {}
    children: dict[str, list[str]] = {}
    attachments: list[tuple[str, str, str]] = []  # (host, satellite, relation)

    for row in valid:
        s, o = row.subject, row.object
        relation = relation_of.get(row.predicate)
        if relation == "supports":
            edge_id = f"{s}->{o}"
            if s == o:
                report(IssueSeverity.WARNING, "Self-supporting node", s, edge_id)
            if s in parents.get(o, ()):
                report(IssueSeverity.WARNING, f"Duplicate supports row from {s} to {o}", edge_id=edge_id)
                continue
            tree_members.update(dict.fromkeys((s, o)))
            parents.setdefault(o, []).append(s)
            children.setdefault(s, []).append(o)
        elif relation == "context":
            attachments.append((s, o, "context"))
        elif relation == "defeater":
            attachments.append((o, s, "defeater"))
        else:
            unknown[row.predicate] = None

    if unknown:
        report(IssueSeverity.INFO, f"Rows with unrecognised predicates ignored: {', '.join(unknown)}")

    # Self loops were reported above
    for cycle in find_cycles(children):
        if len(cycle) > 2:
            report(
                IssueSeverity.WARNING,
                f"Supports cycle will be broken during layout: {' -> '.join(cycle)}",
                cycle[0],
            )

    for child, ps in parents.items():
        if len(ps) > 1:
            report(
                IssueSeverity.INFO,
                f"Node has {len(ps)} parents; {ps[0]} positions it, others draw extra edges",
                child,
            )

    # Without any supports row the first subject stands in as the root
    drawn = set(tree_members) or {row.subject for row in valid[:1]}
    for host, satellite, relation in attachments:
        if host not in drawn:
            report(
                IssueSeverity.ERROR,
                f"{relation.capitalize()} {satellite} is attached to {host}, which is not in the tree",
                satellite,
            )

    return found


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """Counts by severity; the rows are valid when nothing is an error."""
    counts = Counter(issue.severity for issue in issues)
    return {
        "total": len(issues),
        "errors": counts[IssueSeverity.ERROR],
        "warnings": counts[IssueSeverity.WARNING],
        "info": counts[IssueSeverity.INFO],
        "valid": counts[IssueSeverity.ERROR] == 0,
    }

"""Identifier transformation rules.

Each node variant has one pure rule computing its canonical identifier:

- metadata: unchanged (``cda-61`` already encodes its version)
- directive: ``<namespace>-<version>-<old-id>`` (``cip-1`` -> ``cda-61-cip-1``)
- lexicon term: ``<lexicon-namespace>-<lexicon-version>-<old-id>``
  (``mentation`` -> ``cl-1.76-mentation``)
- unknown: unchanged, with a warning naming the type

Identifiers that already carry their own prefix are left alone, so
re-running a migration is a no-op.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import singledispatch
from typing import NamedTuple

from graphloom.config import MigrationConfig
from graphloom.graph.models import (
    DirectiveNode,
    GraphNode,
    LexiconTermNode,
    MetadataNode,
    UnknownNode,
)
from graphloom.observability.logging import get_logger

log = get_logger(__name__)

WARN_PLACEHOLDER = "placeholder_identifier"
WARN_UNKNOWN_TYPE = "unknown_node_type"


@dataclass(frozen=True)
class MappingWarning:
    """A diagnostic raised while computing an identifier.

    Attributes:
        kind: ``placeholder_identifier`` or ``unknown_node_type``.
        node_id: Identifier the node had (may be a sentinel value).
        new_id: Identifier the rule produced.
        message: Human-readable explanation.
    """

    kind: str
    node_id: str | None
    new_id: str
    message: str


class Transform(NamedTuple):
    """Result of applying one rule: the new id and an optional warning."""

    new_id: str
    warning: MappingWarning | None = None


# ---------------------------------------------------------------------------
# Per-variant rules
# ---------------------------------------------------------------------------


def _is_missing(node_id: str | None, config: MigrationConfig) -> bool:
    return node_id is None or not node_id.strip() or node_id in config.sentinel_ids


def _scoped(prefix: str, old_id: str) -> str:
    if old_id.startswith(prefix):
        return old_id
    return prefix + old_id


@singledispatch
def transform_node(node: GraphNode, config: MigrationConfig) -> Transform:
    """Compute the canonical identifier for *node*."""
    raise TypeError(f"No identifier rule for {type(node).__name__}")


@transform_node.register
def _(node: MetadataNode, config: MigrationConfig) -> Transform:
    return Transform(node.id or "")


@transform_node.register
def _(node: DirectiveNode, config: MigrationConfig) -> Transform:
    version = node.version or config.default_version
    prefix = f"{config.namespace}-{version}-"
    if _is_missing(node.id, config):
        new_id = f"{prefix}unknown-{node.fingerprint}"
        return Transform(
            new_id,
            MappingWarning(
                kind=WARN_PLACEHOLDER,
                node_id=node.id,
                new_id=new_id,
                message=(
                    f"Directive with missing identifier {node.id!r} renamed to {new_id}; "
                    "edges can only follow it if they held the same sentinel value"
                ),
            ),
        )
    return Transform(_scoped(prefix, node.id or ""))


@transform_node.register
def _(node: LexiconTermNode, config: MigrationConfig) -> Transform:
    version = node.lexicon_version or node.version or config.default_lexicon_version
    prefix = f"{config.lexicon_namespace}-{version}-"
    return Transform(_scoped(prefix, node.id or ""))


@transform_node.register
def _(node: UnknownNode, config: MigrationConfig) -> Transform:
    new_id = node.id or ""
    return Transform(
        new_id,
        MappingWarning(
            kind=WARN_UNKNOWN_TYPE,
            node_id=node.id,
            new_id=new_id,
            message=f"Unknown node type {node.node_type!r}, keeping ID unchanged: {node.id}",
        ),
    )


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------


def build_id_grammar(config: MigrationConfig) -> list[re.Pattern[str]]:
    """Compile the accepted identifier shapes for *config*'s namespaces.

    Patterns are matched with ``fullmatch``.
    """
    ns = re.escape(config.namespace)
    lex = re.escape(config.lexicon_namespace)
    return [
        re.compile(rf"{ns}-[0-9]+"),  # metadata: cda-61
        re.compile(rf"{ns}-[0-9]+-[a-z]+-[0-9]+"),  # directive: cda-61-cip-1
        re.compile(rf"{ns}-[0-9]+-[a-z]+"),  # directive without number: cda-61-adv
        re.compile(rf"{ns}-[0-9]+-[a-z]+-[a-z0-9]+"),  # directive special: cda-61-oh-010
        re.compile(rf"{lex}-[0-9.]+-.+"),  # lexicon term: cl-1.76-mentation
        re.compile(r"[a-z-]+"),  # legacy bare form, kept during transition
    ]


class IdMapper:
    """Applies the identifier rules and validates the results.

    Warnings from every :meth:`transform` call accumulate in
    :attr:`warnings` until :meth:`reset_warnings` is called.
    """

    def __init__(self, config: MigrationConfig | None = None) -> None:
        self.config = config or MigrationConfig()
        self._grammar = build_id_grammar(self.config)
        self.warnings: list[MappingWarning] = []

    def transform(self, node: GraphNode) -> str:
        """Return the new identifier for *node*, recording any warning."""
        result = transform_node(node, self.config)
        if result.warning is not None:
            self.warnings.append(result.warning)
            log.warning(
                result.warning.kind,
                node_id=result.warning.node_id,
                new_id=result.new_id,
                node_type=node.node_type,
            )
        return result.new_id

    def validate_new_id(self, new_id: str | None) -> bool:
        """Check *new_id* against every recognized identifier grammar."""
        if not new_id:
            return False
        return any(pattern.fullmatch(new_id) for pattern in self._grammar)

    def reset_warnings(self) -> None:
        self.warnings = []

    def warnings_of_kind(self, kind: str) -> list[MappingWarning]:
        return [w for w in self.warnings if w.kind == kind]


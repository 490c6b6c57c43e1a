"""
Error taxonomy for the flow graph editor.

Structural errors are raised before any local state is touched, so a
rejected action never leaves a partial effect behind. RepositoryFailure is
the only error produced after an optimistic update has been applied.
"""

from typing import Optional


class FlowGraphError(Exception):
    """Base class for every error raised by flowgraph."""


class NotFound(FlowGraphError):
    """A referenced node, edge or option does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidKind(FlowGraphError):
    """Unsupported node kind."""

    def __init__(self, kind, reason: str = "unsupported node kind"):
        self.kind = kind
        super().__init__(f"Invalid node kind {kind!r}: {reason}")


class ProtectedNode(FlowGraphError):
    """Attempt to delete the unique start node."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} is the start node and cannot be deleted")


class DuplicateEdge(FlowGraphError):
    """Edge uniqueness would be violated."""


class InvalidEdge(FlowGraphError):
    """Edge endpoints break a structural rule (self-loop, into start, out of end)."""


class SetMismatch(FlowGraphError):
    """Reorder was given a different id set than the one currently stored."""

    def __init__(self, node_id: str, expected, given):
        self.node_id = node_id
        self.expected = set(expected)
        self.given = list(given)
        super().__init__(
            f"Option ids for node {node_id} do not match: "
            f"expected {sorted(self.expected)}, got {self.given}"
        )


class FixedOptionSet(FlowGraphError):
    """The options of a timer node are a fixed pair and cannot be edited."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Timer node {node_id} owns a fixed option pair")


class RepositoryFailure(FlowGraphError):
    """A write to the external repository failed or timed out."""

    def __init__(self, operation: str, message: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Repository {operation} failed: {message}")

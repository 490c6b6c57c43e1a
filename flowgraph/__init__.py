"""
flowgraph: authoring engine for conversational flow graphs.

- GraphStore: in-memory flow being edited, with undo and queued persistence
- FlowCatalog: flow list management (rename, activate, default, delete, duplicate)
- resolve / Stimulus: deterministic transition resolution
- Simulator: preview a flow as a chat
- CanvasController (flowgraph.canvas): pointer interaction state machine
"""

from flowgraph.errors import (
    DuplicateEdge,
    FixedOptionSet,
    FlowGraphError,
    InvalidEdge,
    InvalidKind,
    NotFound,
    ProtectedNode,
    RepositoryFailure,
    SetMismatch,
)
from flowgraph.flows import FlowCatalog
from flowgraph.model import Edge, Flow, FlowSnapshot, Node, Option, Position
from flowgraph.resolver import Resolution, Stimulus, resolve, resolve_edge
from flowgraph.simulator import Simulator, Turn
from flowgraph.store import AvailabilityPolicy, GraphStore, UndoResult
from flowgraph.undo import UndoRecord, UndoStack
from flowgraph.validation import ValidationIssue, validate_flow
from flowgraph.write_queue import WriteQueue

__all__ = [
    'GraphStore',
    'FlowCatalog',
    'AvailabilityPolicy',
    'UndoResult',
    'UndoRecord',
    'UndoStack',
    'WriteQueue',
    'Flow',
    'Node',
    'Option',
    'Edge',
    'Position',
    'FlowSnapshot',
    'Stimulus',
    'Resolution',
    'resolve',
    'resolve_edge',
    'Simulator',
    'Turn',
    'ValidationIssue',
    'validate_flow',
    'FlowGraphError',
    'NotFound',
    'InvalidKind',
    'ProtectedNode',
    'DuplicateEdge',
    'InvalidEdge',
    'SetMismatch',
    'FixedOptionSet',
    'RepositoryFailure',
]

"""
Undo stack for destructive graph edits.

Each record is the delete plan that was applied: the full copies of every
entity removed in one logical operation, with their original ids, so the
inverse is simply re-creating them. The stack is bounded (most recent N)
and strictly LIFO; there is no redo.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from flowgraph.model import Edge, Node, Option

logger = logging.getLogger(__name__)

UNDO_LIMIT = 20

UNDO_KINDS = frozenset(['delete_node', 'delete_edge', 'delete_option'])


@dataclass(frozen=True)
class UndoRecord:
    """
    Everything removed by one delete, computed before the delete is applied.

    - delete_node: `node` (with its options) and every edge touching it
    - delete_edge: the single edge
    - delete_option: the option and every edge keyed on it
    """
    kind: str
    node: Optional[Node] = None
    option: Optional[Option] = None
    edges: Tuple[Edge, ...] = ()
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.kind not in UNDO_KINDS:
            raise ValueError(f"Invalid undo kind '{self.kind}'. Valid: {sorted(UNDO_KINDS)}")

    @classmethod
    def for_node(cls, node: Node, edges: List[Edge]) -> 'UndoRecord':
        return cls(kind='delete_node', node=copy.deepcopy(node), edges=tuple(copy.deepcopy(edges)))

    @classmethod
    def for_edge(cls, edge: Edge) -> 'UndoRecord':
        return cls(kind='delete_edge', edges=(copy.deepcopy(edge),))

    @classmethod
    def for_option(cls, option: Option, edges: List[Edge]) -> 'UndoRecord':
        return cls(kind='delete_option', option=copy.deepcopy(option), edges=tuple(copy.deepcopy(edges)))

    @property
    def options(self) -> Tuple[Option, ...]:
        if self.node is not None:
            return tuple(self.node.options)
        if self.option is not None:
            return (self.option,)
        return ()

    def describe(self) -> str:
        if self.kind == 'delete_node':
            return f"node '{self.node.title}' ({len(self.node.options)} options, {len(self.edges)} edges)"
        if self.kind == 'delete_option':
            return f"option '{self.option.label}' ({len(self.edges)} edges)"
        return f"edge {self.edges[0].source_node_id} -> {self.edges[0].target_node_id}"


class UndoStack:
    """Bounded LIFO of UndoRecords."""

    def __init__(self, limit: int = UNDO_LIMIT):
        if limit < 1:
            raise ValueError("Undo limit must be at least 1")
        self.limit = limit
        self._records: List[UndoRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    @property
    def can_undo(self) -> bool:
        return bool(self._records)

    def push(self, record: UndoRecord) -> None:
        self._records.append(record)
        if len(self._records) > self.limit:
            dropped = self._records.pop(0)
            logger.debug(f"Undo stack full, dropped oldest record: {dropped.describe()}")

    def peek(self) -> Optional[UndoRecord]:
        return self._records[-1] if self._records else None

    def pop(self) -> Optional[UndoRecord]:
        return self._records.pop() if self._records else None

    def clear(self) -> None:
        self._records = []

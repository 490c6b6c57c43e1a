"""
Graph store: the authoritative in-memory copy of one flow being edited.

Every mutation validates first and raises a named error before touching any
state, then updates the local graph (the source of truth for the UI) and
submits the matching durable write to the WriteQueue. Repository failures
surface later through the queue; the local graph is never rolled back.

Deletes are computed as an UndoRecord (gather), applied (apply) and pushed
onto the UndoStack, so `undo()` replays exactly the inverse.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from flowgraph.errors import (
    DuplicateEdge,
    FixedOptionSet,
    FlowGraphError,
    InvalidEdge,
    InvalidKind,
    NotFound,
    ProtectedNode,
    SetMismatch,
)
from flowgraph.model import (
    ACTION_KINDS,
    AVAILABILITY_VALUES,
    CONDITION_KINDS,
    MESSAGE_KINDS,
    NODE_KIND_LABELS,
    NODE_KINDS,
    TIMER_EVENTS,
    TIMER_OPTIONS,
    ActionConfig,
    Edge,
    Flow,
    FlowSnapshot,
    Node,
    Option,
    Position,
    config_for,
    new_id,
    parse_extract_fields,
    rows_to_graph,
)
from flowgraph.undo import UNDO_LIMIT, UndoRecord, UndoStack
from flowgraph.write_queue import PendingWrite, WriteCall, WriteQueue

logger = logging.getLogger(__name__)

# Placement of nodes created without an explicit position
NEW_NODE_OFFSET = (350, 50)
RIGHTMOST_OFFSET = (350, 0)
FIRST_NODE_POSITION = (400, 100)
DUPLICATE_OFFSET = (50, 80)

# Node fields an operator may edit, with the columns they map to
NODE_FIELD_COLUMNS = {
    'title': ('title',),
    'message_template': ('message_template',),
    'action_kind': ('action_type', 'action_config'),
    'config': ('action_config',),
    'extract_fields': ('extract_field',),
    'require_extraction': ('require_extraction',),
    'allow_freeform_interpretation': ('allow_ai_interpretation',),
}

OPTION_FIELD_COLUMNS = {
    'label': 'label',
    'value': 'value',
}


def match_key(edge: Edge) -> Tuple[str, Optional[str]]:
    """
    What an edge answers to when leaving its source node.

    Two edges from one source never share a key. Option edges are keyed by
    their option; keywords compare trimmed and case-insensitively.
    """
    if edge.source_option_id is not None:
        return 'option', edge.source_option_id
    if edge.is_fallback:
        return 'fallback', None
    value = edge.condition_value or ''
    if edge.condition_kind == 'keyword_match':
        value = value.strip().lower()
    return edge.condition_kind, value


@dataclass(frozen=True)
class AvailabilityPolicy:
    """
    How node-level edges leaving an availability check are labelled.

    Slots are handed out in order to the first edges created; once every
    slot is taken the next edge becomes the fallback.
    """
    slots: Tuple[str, ...] = AVAILABILITY_VALUES

    def __post_init__(self):
        unknown = [s for s in self.slots if s not in AVAILABILITY_VALUES]
        if unknown or len(set(self.slots)) != len(self.slots):
            raise ValueError(f"Invalid availability slots {self.slots!r}. Valid: {AVAILABILITY_VALUES}")

    def assign(self, existing: Iterable[Edge]) -> Tuple[str, Optional[str]]:
        existing = [e for e in existing if e.source_option_id is None]
        taken = {e.condition_value for e in existing if e.condition_kind == 'availability'}
        for slot in self.slots:
            if slot not in taken:
                return 'availability', slot
        if not any(e.is_fallback for e in existing):
            return 'fallback', None
        raise DuplicateEdge("Availability check already has all of its outcome edges and a fallback")


@dataclass(frozen=True)
class UndoResult:
    undone: bool
    message: str
    record: Optional[UndoRecord] = None


class GraphStore:
    """Editing session for one flow."""

    def __init__(self, repository, undo_limit: int = UNDO_LIMIT,
                 availability_policy: Optional[AvailabilityPolicy] = None,
                 write_queue: Optional[WriteQueue] = None):
        self.repository = repository
        self.writes = write_queue or WriteQueue(repository)
        self.undo_stack = UndoStack(undo_limit)
        self.availability_policy = availability_policy or AvailabilityPolicy()
        self.flow: Optional[Flow] = None
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self.is_dirty = False
        self._layout_version = 0

    # --- Session lifecycle ---

    def load(self, flow_id: str) -> Flow:
        """Load a flow from the repository, replacing the whole session."""
        data = self.repository.load_flow(flow_id)
        if not data or not data.get('flow'):
            raise NotFound('Flow', flow_id)
        flow, nodes, edges = rows_to_graph(data['flow'], data.get('nodes') or [], data.get('edges') or [])
        self.attach(flow, nodes, edges)
        logger.info(f"Loaded flow '{flow.name}' ({len(nodes)} nodes, {len(edges)} edges)")
        return flow

    def create_flow(self, name: str, description: Optional[str] = None,
                    company_id: Optional[str] = None, is_default: bool = False) -> Flow:
        """
        Start a session on a brand-new flow holding only its start node.

        New flows are active. Whether it becomes the default is the caller's
        call (see FlowCatalog.is_empty).
        """
        flow = Flow(id=new_id(), name=name, is_active=True, is_default=is_default,
                    description=description, company_id=company_id)
        start = Node(
            id=new_id(),
            flow_id=flow.id,
            kind='start',
            title=NODE_KIND_LABELS['start'],
            position=Position(*FIRST_NODE_POSITION),
        )
        self.attach(flow, [start], [])
        self._submit(f"create flow '{name}'", [
            WriteCall('create_flow', (flow.to_row(),)),
            WriteCall('create_node', (start.to_row(),)),
        ])
        logger.info(f"Created flow '{name}' ({flow.id})")
        return flow

    def attach(self, flow: Flow, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Start a fresh session over an already-built graph."""
        self.discard()
        self.flow = flow
        self._nodes = {n.id: n for n in nodes}
        self._edges = {e.id: e for e in edges}

    def discard(self) -> None:
        """Drop the graph, the undo stack and every unacknowledged write."""
        self.writes.abandon()
        self.undo_stack.clear()
        self.flow = None
        self._nodes = {}
        self._edges = {}
        self.is_dirty = False
        self._layout_version = 0

    def snapshot(self) -> FlowSnapshot:
        self._require_flow()
        return FlowSnapshot.capture(self.flow, self.nodes, self.edges)

    # --- Queries ---

    @property
    def nodes(self) -> List[Node]:
        return sorted(self._nodes.values(), key=lambda n: n.display_order)

    @property
    def edges(self) -> List[Edge]:
        return sorted(self._edges.values(), key=lambda e: e.display_order)

    @property
    def can_undo(self) -> bool:
        return self.undo_stack.can_undo

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFound('Node', node_id)
        return node

    def edge(self, edge_id: str) -> Edge:
        edge = self._edges.get(edge_id)
        if edge is None:
            raise NotFound('Edge', edge_id)
        return edge

    def find_option(self, option_id: str) -> Tuple[Node, Option]:
        for node in self._nodes.values():
            option = node.option(option_id)
            if option is not None:
                return node, option
        raise NotFound('Option', option_id)

    def start_node(self) -> Optional[Node]:
        for node in self._nodes.values():
            if node.kind == 'start':
                return node
        return None

    def edges_from(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source_node_id == node_id]

    def edges_touching(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.touches(node_id)]

    def edges_for_option(self, option_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source_option_id == option_id]

    # --- Helpers ---

    def _require_flow(self) -> Flow:
        if self.flow is None:
            raise NotFound('Flow', '<not loaded>')
        return self.flow

    def _next_node_order(self) -> int:
        return max((n.display_order for n in self._nodes.values()), default=-1) + 1

    def _next_edge_order(self) -> int:
        return max((e.display_order for e in self._edges.values()), default=-1) + 1

    def smart_position(self, near_node_id: Optional[str] = None) -> Position:
        """Where a node created without explicit coordinates should go."""
        ref = self._nodes.get(near_node_id) if near_node_id else None
        if ref is not None:
            return Position(ref.position.x + NEW_NODE_OFFSET[0], ref.position.y + NEW_NODE_OFFSET[1])
        if self._nodes:
            rightmost = max(self._nodes.values(), key=lambda n: n.position.x)
            return Position(rightmost.position.x + RIGHTMOST_OFFSET[0], rightmost.position.y + RIGHTMOST_OFFSET[1])
        return Position(*FIRST_NODE_POSITION)

    def _submit(self, description: str, calls: List[WriteCall], on_success=None) -> PendingWrite:
        return self.writes.submit(description, calls, on_success=on_success)

    # --- Nodes ---

    def add_node(self, kind: str, position: Optional[Tuple[float, float]] = None,
                 near_node_id: Optional[str] = None) -> Node:
        """
        Create a node of `kind`, last in display order.

        Timer nodes are created together with their fixed `responded` /
        `timeout` option pair.
        """
        flow = self._require_flow()
        if kind not in NODE_KINDS:
            raise InvalidKind(kind)
        if kind == 'start' and self.start_node() is not None:
            raise InvalidKind(kind, 'flow already has a start node')

        pos = Position(round(position[0]), round(position[1])) if position else self.smart_position(near_node_id)
        label = NODE_KIND_LABELS[kind]
        node = Node(
            id=new_id(),
            flow_id=flow.id,
            kind=kind,
            title=label if kind == 'start' else f"Novo {label}",
            message_template='' if kind in MESSAGE_KINDS else None,
            config=config_for(kind),
            position=pos,
            display_order=self._next_node_order(),
        )
        if kind == 'timer':
            node.options = [
                Option(id=new_id(), node_id=node.id, label=lbl, value=val, sort_order=i)
                for i, (lbl, val) in enumerate(TIMER_OPTIONS)
            ]

        self._nodes[node.id] = node
        calls = [WriteCall('create_node', (node.to_row(),))]
        calls += [WriteCall('create_option', (o.to_row(),)) for o in node.options]
        self._submit(f"add {kind} node", calls)
        logger.info(f"Added {kind} node {node.id}")
        return node

    def duplicate_node(self, node_id: str) -> Node:
        """Copy a node and its options under fresh ids. Edges are not copied."""
        source = self.node(node_id)
        if source.kind == 'start':
            raise InvalidKind('start', 'flow already has a start node')

        copy_id = new_id()
        duplicate = copy.deepcopy(source)
        duplicate.id = copy_id
        duplicate.title = f"{source.title} (cópia)"
        duplicate.position = Position(round(source.position.x + DUPLICATE_OFFSET[0]),
                                      round(source.position.y + DUPLICATE_OFFSET[1]))
        duplicate.display_order = self._next_node_order()
        for option in duplicate.options:
            option.id = new_id()
            option.node_id = copy_id

        self._nodes[copy_id] = duplicate
        calls = [WriteCall('create_node', (duplicate.to_row(),))]
        calls += [WriteCall('create_option', (o.to_row(),)) for o in duplicate.sorted_options()]
        self._submit(f"duplicate node {node_id}", calls)
        logger.info(f"Duplicated node {node_id} as {copy_id}")
        return duplicate

    def update_node(self, node_id: str, **fields) -> Node:
        """
        Merge field edits into a node.

        Editable: title, message_template, action_kind, config (a config shape
        or a plain dict), extract_fields, require_extraction,
        allow_freeform_interpretation. `kind` is fixed at creation.
        """
        node = self.node(node_id)
        if 'kind' in fields:
            raise InvalidKind(fields['kind'], 'kind cannot change after creation')
        unknown = [k for k in fields if k not in NODE_FIELD_COLUMNS]
        if unknown:
            raise ValueError(f"Cannot update node fields: {unknown}")

        action_kind = fields.get('action_kind', node.action_kind)
        if 'action_kind' in fields:
            if node.kind != 'action':
                raise ValueError(f"Only action nodes have an action kind (node is '{node.kind}')")
            if action_kind is not None and action_kind not in ACTION_KINDS:
                raise ValueError(f"Invalid action kind '{action_kind}'. Valid: {ACTION_KINDS}")

        config = node.config
        if 'config' in fields:
            raw = fields['config']
            if isinstance(raw, dict) or raw is None:
                config = config_for(node.kind, action_kind, raw)
            elif raw.tag != config.tag:
                raise ValueError(f"Config shape '{raw.tag}' does not fit a '{node.kind}' node")
            else:
                config = raw
        if isinstance(config, ActionConfig) and config.action_kind != action_kind:
            config = ActionConfig(action_kind=action_kind, extra=config.extra)

        if 'title' in fields:
            node.title = fields['title']
        if 'message_template' in fields:
            node.message_template = fields['message_template']
        if 'extract_fields' in fields:
            node.extract_fields = parse_extract_fields(fields['extract_fields'])
        if 'require_extraction' in fields:
            node.require_extraction = bool(fields['require_extraction'])
        if 'allow_freeform_interpretation' in fields:
            node.allow_freeform_interpretation = bool(fields['allow_freeform_interpretation'])
        node.action_kind = action_kind
        node.config = config

        row = node.to_row()
        columns = sorted({c for k in fields for c in NODE_FIELD_COLUMNS[k]})
        self._submit(f"update node {node_id}",
                     [WriteCall('update_node', (node_id, {c: row[c] for c in columns}))])
        logger.info(f"Updated node {node_id}: {sorted(fields)}")
        return node

    def delete_node(self, node_id: str) -> UndoRecord:
        """Delete a node with its options and every edge touching it."""
        node = self.node(node_id)
        if node.kind == 'start':
            raise ProtectedNode(node_id)

        record = UndoRecord.for_node(node, self.edges_touching(node_id))
        self.undo_stack.push(record)
        self._apply_delete(record)

        calls = [WriteCall('delete_edge', (e.id,)) for e in record.edges]
        calls += [WriteCall('delete_option', (o.id,)) for o in record.options]
        calls.append(WriteCall('delete_node', (node_id,)))
        self._submit(f"delete node {node_id}", calls)
        logger.info(f"Deleted {record.describe()}")
        return record

    def move_node(self, node_id: str, x: float, y: float) -> None:
        """Local-only position change; persisted by `save_layout()`."""
        node = self.node(node_id)
        node.position = Position(x, y)
        self.is_dirty = True
        self._layout_version += 1

    def save_layout(self) -> Optional[PendingWrite]:
        """Persist every node position in one batch."""
        self._require_flow()
        positions = [(n.id, round(n.position.x), round(n.position.y)) for n in self.nodes]
        if not positions:
            return None
        version = self._layout_version

        def on_saved(_write):
            if self._layout_version == version:
                self.is_dirty = False

        logger.info(f"Saving layout of {len(positions)} nodes")
        return self._submit("save layout", [WriteCall('batch_update_positions', (positions,))],
                            on_success=on_saved)

    # --- Edges ---

    def add_edge(self, source_node_id: str, target_node_id: str,
                 source_option_id: Optional[str] = None,
                 condition_kind: Optional[str] = None,
                 condition_value: Optional[str] = None) -> Edge:
        """
        Connect two nodes.

        Option edges are `option_selected` (or `timeout` for timer options,
        valued with the option's value). Node-level edges are `fallback`,
        except from availability checks where the AvailabilityPolicy picks
        the slot, or when `keyword_match` is asked for explicitly.
        """
        flow = self._require_flow()
        source = self.node(source_node_id)
        target = self.node(target_node_id)
        if source_node_id == target_node_id:
            raise InvalidEdge(f"Node {source_node_id} cannot connect to itself")
        if target.kind == 'start':
            raise InvalidEdge("The start node cannot have incoming edges")
        if source.kind == 'end':
            raise InvalidEdge("An end node cannot have outgoing edges")
        if condition_kind is not None and condition_kind not in CONDITION_KINDS:
            raise ValueError(f"Invalid condition kind '{condition_kind}'. Valid: {sorted(CONDITION_KINDS)}")

        outgoing = self.edges_from(source_node_id)
        for edge in outgoing:
            if edge.target_node_id == target_node_id and edge.source_option_id == source_option_id:
                raise DuplicateEdge(f"Edge {source_node_id} -> {target_node_id} already exists")

        if source_option_id is not None:
            kind, value = self._option_condition(source, source_option_id, outgoing)
        else:
            kind, value = self._node_condition(source, outgoing, condition_kind, condition_value)

        edge = Edge(
            id=new_id(),
            flow_id=flow.id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            source_option_id=source_option_id,
            condition_kind=kind,
            condition_value=value,
            display_order=self._next_edge_order(),
        )
        self._edges[edge.id] = edge
        self._submit(f"add edge {source_node_id} -> {target_node_id}",
                     [WriteCall('create_edge', (edge.to_row(),))])
        logger.info(f"Added {kind} edge {source_node_id} -> {target_node_id}")
        return edge

    def _option_condition(self, source: Node, option_id: str,
                          outgoing: List[Edge]) -> Tuple[str, Optional[str]]:
        option = source.option(option_id)
        if option is None:
            raise NotFound('Option', option_id)
        if any(e.source_option_id == option_id for e in outgoing):
            raise DuplicateEdge(f"Option {option_id} already has a transition")
        if source.kind == 'timer':
            return 'timeout', option.value
        return 'option_selected', None

    def _node_condition(self, source: Node, outgoing: List[Edge], kind: Optional[str],
                        value: Optional[str]) -> Tuple[str, Optional[str]]:
        node_level = [e for e in outgoing if e.source_option_id is None]

        if kind == 'keyword_match':
            keyword = (value or '').strip()
            if not keyword:
                raise ValueError("A keyword edge needs a non-empty keyword")
            for edge in node_level:
                if edge.condition_kind == 'keyword_match' and \
                        (edge.condition_value or '').strip().lower() == keyword.lower():
                    raise DuplicateEdge(f"Keyword '{keyword}' is already routed from node {source.id}")
            return 'keyword_match', keyword

        if kind in ('timeout', 'availability'):
            valid = TIMER_EVENTS if kind == 'timeout' else AVAILABILITY_VALUES
            if value not in valid:
                raise ValueError(f"Invalid {kind} value '{value}'. Valid: {valid}")
            if any(e.condition_kind == kind and e.condition_value == value for e in node_level):
                raise DuplicateEdge(f"Node {source.id} already has a '{value}' edge")
            return kind, value

        if kind == 'option_selected':
            raise ValueError("option_selected edges must name a source option")

        if source.is_availability_check and kind is None:
            return self.availability_policy.assign(node_level)

        if any(e.is_fallback for e in node_level):
            raise DuplicateEdge(f"Node {source.id} already has a fallback edge")
        return 'fallback', None

    def delete_edge(self, edge_id: str) -> UndoRecord:
        edge = self.edge(edge_id)
        record = UndoRecord.for_edge(edge)
        self.undo_stack.push(record)
        self._apply_delete(record)
        self._submit(f"delete edge {edge_id}", [WriteCall('delete_edge', (edge_id,))])
        logger.info(f"Deleted {record.describe()}")
        return record

    # --- Options ---

    def add_option(self, node_id: str, label: str, value: str) -> Option:
        node = self.node(node_id)
        if node.kind == 'timer':
            raise FixedOptionSet(node_id)
        option = Option(
            id=new_id(),
            node_id=node_id,
            label=label,
            value=value,
            sort_order=max((o.sort_order for o in node.options), default=-1) + 1,
        )
        node.options.append(option)
        self._submit(f"add option to {node_id}", [WriteCall('create_option', (option.to_row(),))])
        logger.info(f"Added option '{label}' to node {node_id}")
        return option

    def update_option(self, option_id: str, **fields) -> Option:
        """Edit an option's label or value. Timer options only accept label edits."""
        node, option = self.find_option(option_id)
        unknown = [k for k in fields if k not in OPTION_FIELD_COLUMNS]
        if unknown:
            raise ValueError(f"Cannot update option fields: {unknown}")
        if node.kind == 'timer' and 'value' in fields and fields['value'] != option.value:
            raise FixedOptionSet(node.id)

        for key, val in fields.items():
            setattr(option, key, val)
        self._submit(f"update option {option_id}",
                     [WriteCall('update_option', (option_id, {OPTION_FIELD_COLUMNS[k]: v for k, v in fields.items()}))])
        return option

    def delete_option(self, option_id: str) -> UndoRecord:
        """Delete an option and every edge keyed on it, as one undoable unit."""
        node, option = self.find_option(option_id)
        if node.kind == 'timer':
            raise FixedOptionSet(node.id)

        record = UndoRecord.for_option(option, self.edges_for_option(option_id))
        self.undo_stack.push(record)
        self._apply_delete(record)

        calls = [WriteCall('delete_edge', (e.id,)) for e in record.edges]
        calls.append(WriteCall('delete_option', (option_id,)))
        self._submit(f"delete option {option_id}", calls)
        logger.info(f"Deleted {record.describe()}")
        return record

    def reorder_options(self, node_id: str, ordered_option_ids: Sequence[str]) -> List[Option]:
        """Re-derive contiguous sort orders from the given id order."""
        node = self.node(node_id)
        ordered = list(ordered_option_ids)
        current = [o.id for o in node.sorted_options()]
        if len(ordered) != len(current) or set(ordered) != set(current):
            raise SetMismatch(node_id, current, ordered)
        if node.kind == 'timer' and ordered != current:
            raise FixedOptionSet(node_id)

        by_id = {o.id: o for o in node.options}
        for index, option_id in enumerate(ordered):
            by_id[option_id].sort_order = index
        node.options = [by_id[i] for i in ordered]
        self._submit(f"reorder options of {node_id}", [WriteCall('reorder_options', (node_id, ordered))])
        return list(node.options)

    # --- Delete plans and undo ---

    def _apply_delete(self, record: UndoRecord) -> None:
        for edge in record.edges:
            self._edges.pop(edge.id, None)
        if record.kind == 'delete_node':
            self._nodes.pop(record.node.id, None)
        elif record.kind == 'delete_option':
            owner = self._nodes.get(record.option.node_id)
            if owner is not None:
                owner.options = [o for o in owner.options if o.id != record.option.id]

    def _restorable_edges(self, record: UndoRecord) -> List[Edge]:
        """Captured edges whose endpoints still exist once the record is restored."""
        node_ids = set(self._nodes)
        option_ids = {o.id for n in self._nodes.values() for o in n.options}
        if record.node is not None:
            node_ids.add(record.node.id)
        option_ids.update(o.id for o in record.options)

        edges = []
        for edge in record.edges:
            if edge.source_node_id not in node_ids or edge.target_node_id not in node_ids or \
                    (edge.source_option_id is not None and edge.source_option_id not in option_ids):
                logger.warning(f"Not restoring edge {edge.id}: an endpoint no longer exists")
                continue
            edges.append(edge)
        return edges

    def _check_restore(self, record: UndoRecord, edges: List[Edge]) -> None:
        if record.kind == 'delete_option' and record.option.node_id not in self._nodes:
            raise NotFound('Node', record.option.node_id)
        for edge in edges:
            key = match_key(edge)
            for other in self._edges.values():
                if other.source_node_id != edge.source_node_id:
                    continue
                if other.target_node_id == edge.target_node_id and other.source_option_id == edge.source_option_id:
                    raise DuplicateEdge(f"Edge {edge.source_node_id} -> {edge.target_node_id} was recreated "
                                        f"since the delete")
                if match_key(other) == key:
                    if edge.source_option_id is not None:
                        raise DuplicateEdge(f"Option {edge.source_option_id} was reconnected since the delete")
                    detail = f" for '{key[1]}'" if key[1] else ''
                    raise DuplicateEdge(f"Node {edge.source_node_id} has a new {key[0]} edge{detail} "
                                        f"since the delete")

    def undo(self) -> UndoResult:
        """
        Re-create the entities removed by the most recent delete.

        The restore goes through the same repository create calls as normal
        authoring, with the original ids. A record that can no longer be
        applied is dropped and the error raised.
        """
        record = self.undo_stack.pop()
        if record is None:
            logger.info("Nothing to undo")
            return UndoResult(False, "Nothing to undo")

        restored = copy.deepcopy(record)
        edges = self._restorable_edges(restored)
        try:
            self._check_restore(restored, edges)
        except FlowGraphError as e:
            logger.warning(f"Dropping undo record for {record.describe()}: {e}")
            raise

        calls: List[WriteCall] = []
        if restored.kind == 'delete_node':
            self._nodes[restored.node.id] = restored.node
            calls.append(WriteCall('create_node', (restored.node.to_row(),)))
            calls += [WriteCall('create_option', (o.to_row(),)) for o in restored.node.sorted_options()]
        elif restored.kind == 'delete_option':
            owner = self._nodes[restored.option.node_id]
            owner.options.append(restored.option)
            owner.options.sort(key=lambda o: o.sort_order)
            calls.append(WriteCall('create_option', (restored.option.to_row(),)))
        for edge in edges:
            self._edges[edge.id] = edge
            calls.append(WriteCall('create_edge', (edge.to_row(),)))

        self._submit(f"undo {record.kind}", calls)
        message = f"Restored {record.describe()}"
        logger.info(message)
        return UndoResult(True, message, record)

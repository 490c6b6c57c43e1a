"""
Graph model for conversation flows.

A flow is a small directed graph of conversational steps (nodes) joined by
conditional transitions (edges). Question-like nodes own an ordered list of
options; an edge keyed on an option is followed when that option is picked.

Rows exchanged with the remote store use the snake_case column names of the
`conversation_flows`, `flow_nodes`, `flow_node_options` and `flow_edges`
tables. Everything in this module is plain data plus (de)serialisation.
"""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


# --- Closed vocabularies ---

NODE_KINDS = ('start', 'message', 'question', 'action', 'condition', 'end', 'delay', 'timer')

ACTION_KINDS = (
    'send_media', 'send_pdf', 'send_video', 'extract_data', 'schedule_visit',
    'handoff', 'ai_response', 'check_party_availability', 'check_visit_availability',
    'disable_followup', 'disable_ai', 'mark_existing_customer',
)

# Action kinds whose outcome is an availability result
AVAILABILITY_ACTIONS = frozenset(['check_party_availability', 'check_visit_availability'])

CONDITION_KINDS = frozenset(['option_selected', 'keyword_match', 'fallback', 'timeout', 'availability'])

AVAILABILITY_VALUES = ('available', 'unavailable')
TIMER_EVENTS = ('responded', 'timeout')

EXTRACT_FIELDS = (
    'customer_name', 'event_date', 'visit_date', 'guest_count',
    'child_name', 'child_age', 'preferred_slot', 'event_type',
)

NODE_KIND_LABELS = {
    'start': 'Início',
    'message': 'Mensagem',
    'question': 'Pergunta',
    'action': 'Ação',
    'condition': 'Condição',
    'end': 'Fim',
    'delay': 'Espera',
    'timer': 'Timer',
}

ACTION_KIND_LABELS = {
    'send_media': 'Enviar Galeria',
    'send_pdf': 'Enviar PDF',
    'send_video': 'Enviar Vídeo',
    'extract_data': 'Extrair Dados',
    'schedule_visit': 'Agendar Visita',
    'handoff': 'Transbordo Humano',
    'ai_response': 'Resposta IA',
    'check_party_availability': 'Verificar Agenda Festas',
    'check_visit_availability': 'Verificar Agenda Visitas',
    'disable_followup': 'Desativar Follow-ups',
    'disable_ai': 'Desativar IA',
    'mark_existing_customer': 'Marcar como Cliente',
}

EXTRACT_FIELD_LABELS = {
    'customer_name': 'Nome do Cliente',
    'event_date': 'Data da Festa',
    'visit_date': 'Data da Visita',
    'guest_count': 'Qtd. Convidados',
    'child_name': 'Nome da Criança',
    'child_age': 'Idade da Criança',
    'preferred_slot': 'Turno Preferido',
    'event_type': 'Tipo de Evento',
}

# Kinds that start with an (empty) message template
MESSAGE_KINDS = frozenset(['message', 'question', 'timer'])

# Kinds whose options are rendered as quick replies
OPTION_KINDS = frozenset(['question', 'timer'])

# (label, value) of the fixed timer pair, in sort order
TIMER_OPTIONS = (('Respondeu', 'responded'), ('Timeout', 'timeout'))


def new_id() -> str:
    return str(uuid.uuid4())


def parse_extract_fields(raw: Union[None, str, Iterable[str]]) -> Tuple[str, ...]:
    """
    Parse the comma-joined storage form of extract fields.

    Order is kept, blanks and repeats are dropped.
    """
    if not raw:
        return ()
    parts = raw.split(',') if isinstance(raw, str) else list(raw)
    seen = []
    for part in parts:
        name = str(part).strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


def join_extract_fields(fields: Iterable[str]) -> Optional[str]:
    joined = ','.join(parse_extract_fields(list(fields)))
    return joined or None


# --- Node configuration (tagged by node kind / action kind) ---

@dataclass(frozen=True)
class EmptyConfig:
    """Kinds that carry no configuration."""
    tag: str = 'empty'

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return None


@dataclass(frozen=True)
class DelayConfig:
    delay_seconds: int = 5
    tag: str = 'delay'

    def to_dict(self) -> Dict[str, Any]:
        return {'delay_seconds': self.delay_seconds}


@dataclass(frozen=True)
class TimerConfig:
    timeout_minutes: int = 10
    tag: str = 'timer'

    def to_dict(self) -> Dict[str, Any]:
        return {'timeout_minutes': self.timeout_minutes}


@dataclass(frozen=True)
class QuestionConfig:
    """Context handed to the qualification classifier for free-text answers."""
    qualify_context: str = ''
    tag: str = 'question'

    def to_dict(self) -> Optional[Dict[str, Any]]:
        if not self.qualify_context:
            return None
        return {'qualify_context': self.qualify_context}


@dataclass(frozen=True)
class ActionConfig:
    """
    Configuration of an action node.

    `action_kind` is the tag; keys the editor does not know about are kept
    in `extra` so they round-trip untouched.
    """
    action_kind: Optional[str] = None
    extra: Tuple[Tuple[str, Any], ...] = ()
    tag: str = 'action'

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return dict(self.extra) or None


NodeConfig = Union[EmptyConfig, DelayConfig, TimerConfig, QuestionConfig, ActionConfig]


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def config_for(kind: str, action_kind: Optional[str] = None,
               raw: Optional[Dict[str, Any]] = None) -> NodeConfig:
    """Build the configuration shape matching a node's kind and action kind."""
    raw = raw or {}
    if kind == 'delay':
        return DelayConfig(delay_seconds=_positive_int(raw.get('delay_seconds'), 5))
    if kind == 'timer':
        return TimerConfig(timeout_minutes=_positive_int(raw.get('timeout_minutes'), 10))
    if kind == 'question':
        return QuestionConfig(qualify_context=str(raw.get('qualify_context') or ''))
    if kind == 'action':
        return ActionConfig(action_kind=action_kind, extra=tuple(sorted(raw.items())))
    return EmptyConfig()


# --- Entities ---

@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Option:
    id: str
    node_id: str
    label: str
    value: str
    sort_order: int = 0

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'node_id': self.node_id,
            'label': self.label,
            'value': self.value,
            'display_order': self.sort_order,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Option':
        return cls(
            id=row['id'],
            node_id=row['node_id'],
            label=row.get('label') or '',
            value=row.get('value') or '',
            sort_order=int(row.get('display_order') or 0),
        )


@dataclass
class Node:
    id: str
    flow_id: str
    kind: str
    title: str
    message_template: Optional[str] = None
    action_kind: Optional[str] = None
    config: NodeConfig = field(default_factory=EmptyConfig)
    extract_fields: Tuple[str, ...] = ()
    require_extraction: bool = False
    allow_freeform_interpretation: bool = False
    position: Position = field(default_factory=Position)
    display_order: int = 0
    options: List[Option] = field(default_factory=list)

    @property
    def is_availability_check(self) -> bool:
        return self.kind == 'action' and self.action_kind in AVAILABILITY_ACTIONS

    def sorted_options(self) -> List[Option]:
        return sorted(self.options, key=lambda o: o.sort_order)

    def option(self, option_id: str) -> Optional[Option]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def to_row(self) -> Dict[str, Any]:
        """Row for `flow_nodes` (options are stored in their own table)."""
        return {
            'id': self.id,
            'flow_id': self.flow_id,
            'node_type': self.kind,
            'title': self.title,
            'message_template': self.message_template,
            'action_type': self.action_kind,
            'action_config': self.config.to_dict(),
            'extract_field': join_extract_fields(self.extract_fields),
            'require_extraction': self.require_extraction,
            'allow_ai_interpretation': self.allow_freeform_interpretation,
            'position_x': round(self.position.x),
            'position_y': round(self.position.y),
            'display_order': self.display_order,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Node':
        kind = row['node_type']
        action_kind = row.get('action_type')
        options = [Option.from_row(o) for o in (row.get('options') or [])]
        options.sort(key=lambda o: o.sort_order)
        return cls(
            id=row['id'],
            flow_id=row.get('flow_id') or '',
            kind=kind,
            title=row.get('title') or '',
            message_template=row.get('message_template'),
            action_kind=action_kind,
            config=config_for(kind, action_kind, row.get('action_config')),
            extract_fields=parse_extract_fields(row.get('extract_field')),
            require_extraction=bool(row.get('require_extraction')),
            allow_freeform_interpretation=bool(row.get('allow_ai_interpretation')),
            position=Position(float(row.get('position_x') or 0), float(row.get('position_y') or 0)),
            display_order=int(row.get('display_order') or 0),
            options=options,
        )


@dataclass
class Edge:
    id: str
    flow_id: str
    source_node_id: str
    target_node_id: str
    source_option_id: Optional[str] = None
    condition_kind: Optional[str] = None
    condition_value: Optional[str] = None
    display_order: int = 0

    @property
    def is_fallback(self) -> bool:
        """Explicit fallback, or a node-level edge with no condition at all."""
        if self.condition_kind == 'fallback':
            return True
        return self.source_option_id is None and self.condition_kind is None

    def touches(self, node_id: str) -> bool:
        return self.source_node_id == node_id or self.target_node_id == node_id

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'flow_id': self.flow_id,
            'source_node_id': self.source_node_id,
            'target_node_id': self.target_node_id,
            'source_option_id': self.source_option_id,
            'condition_type': self.condition_kind,
            'condition_value': self.condition_value,
            'display_order': self.display_order,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Edge':
        return cls(
            id=row['id'],
            flow_id=row.get('flow_id') or '',
            source_node_id=row['source_node_id'],
            target_node_id=row['target_node_id'],
            source_option_id=row.get('source_option_id'),
            condition_kind=row.get('condition_type'),
            condition_value=row.get('condition_value'),
            display_order=int(row.get('display_order') or 0),
        )


@dataclass
class Flow:
    id: str
    name: str
    is_active: bool = False
    is_default: bool = False
    description: Optional[str] = None
    company_id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'is_active': self.is_active,
            'is_default': self.is_default,
            'description': self.description,
            'company_id': self.company_id,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Flow':
        return cls(
            id=row['id'],
            name=row.get('name') or '',
            is_active=bool(row.get('is_active')),
            is_default=bool(row.get('is_default')),
            description=row.get('description'),
            company_id=row.get('company_id'),
        )


@dataclass(frozen=True)
class FlowSnapshot:
    """Frozen copy of a flow's graph, detached from the editing session."""
    flow: Flow
    nodes: Tuple[Node, ...]
    edges: Tuple[Edge, ...]

    @classmethod
    def capture(cls, flow: Flow, nodes: Iterable[Node], edges: Iterable[Edge]) -> 'FlowSnapshot':
        return cls(
            flow=copy.deepcopy(flow),
            nodes=tuple(copy.deepcopy(list(nodes))),
            edges=tuple(copy.deepcopy(list(edges))),
        )

    def node(self, node_id: Optional[str]) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def start_node(self) -> Optional[Node]:
        for node in self.nodes:
            if node.kind == 'start':
                return node
        return None


def rows_to_graph(flow_row: Dict[str, Any], node_rows: List[Dict[str, Any]],
                  edge_rows: List[Dict[str, Any]]) -> Tuple[Flow, List[Node], List[Edge]]:
    """Convert a loaded flow (nodes with nested options) into model objects."""
    nodes = sorted((Node.from_row(r) for r in node_rows), key=lambda n: n.display_order)
    edges = sorted((Edge.from_row(r) for r in edge_rows), key=lambda e: e.display_order)
    return Flow.from_row(flow_row), nodes, edges

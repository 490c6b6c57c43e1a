"""
Conversation simulator for previewing a flow.

Walks a frozen snapshot of the graph the way the production runtime would:
emits each node's rendered message, advances automatically through action
nodes and option-less message nodes, and otherwise waits for a simulated
stimulus that is handed to the transition resolver.

The simulator is synchronous. Pacing (the "typing" delay) belongs to the UI
that displays the transcript.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from flowgraph.errors import NotFound
from flowgraph.model import OPTION_KINDS, FlowSnapshot, Node
from flowgraph.resolver import NO_MATCH, Resolution, Stimulus, match_option_by_text, resolve_edge
from flowgraph.templating import render_template

logger = logging.getLogger(__name__)

BOT = 'bot'
USER = 'user'
SYSTEM = 'system'

NO_MATCH_NOTICE = "(Aqui a IA assumiria para responder naturalmente)"
NO_START_NOTICE = "(Fluxo sem nó de início)"
HOP_LIMIT_NOTICE = "(Avanço automático interrompido: possível ciclo no fluxo)"
MAX_AUTO_HOPS = 50

# (node, free text) -> option id or None
Classifier = Callable[[Node, str], Optional[str]]


@dataclass(frozen=True)
class QuickReply:
    id: str
    label: str
    value: str


@dataclass(frozen=True)
class Turn:
    sender: str
    text: str
    node_id: Optional[str] = None
    options: Tuple[QuickReply, ...] = ()


def auto_advances(node: Node) -> bool:
    """Action nodes and option-less message nodes continue without input."""
    return node.kind == 'action' or (node.kind == 'message' and not node.options)


class Simulator:
    """
    Preview session over a FlowSnapshot.

    Usage:
        sim = Simulator(store.snapshot(), variables={'nome': 'Ana'})
        sim.start()
        sim.send_text('oi')
        sim.choose_option(option_id)
    """

    def __init__(self, snapshot: FlowSnapshot, variables: Optional[Dict[str, str]] = None,
                 classifier: Optional[Classifier] = None, max_auto_hops: int = MAX_AUTO_HOPS):
        self.snapshot = snapshot
        self.variables = dict(variables or {})
        self.classifier = classifier
        self.max_auto_hops = max_auto_hops
        self.transcript: List[Turn] = []
        self.current_node_id: Optional[str] = None
        self.no_match = False

    @property
    def current_node(self) -> Optional[Node]:
        return self.snapshot.node(self.current_node_id)

    @property
    def finished(self) -> bool:
        node = self.current_node
        return node is not None and node.kind == 'end'

    def start(self) -> List[Turn]:
        """Begin (or restart) the conversation at the start node."""
        self.transcript = []
        self.current_node_id = None
        self.no_match = False

        start = self.snapshot.start_node()
        if start is None:
            logger.warning(f"Flow '{self.snapshot.flow.name}' has no start node")
            self._say(SYSTEM, NO_START_NOTICE)
            return list(self.transcript)

        self._enter(start)
        return list(self.transcript)

    def reset(self) -> List[Turn]:
        return self.start()

    # --- Stimuli ---

    def choose_option(self, option_id: str) -> Resolution:
        node = self._require_current()
        option = node.option(option_id)
        if option is None:
            raise NotFound('Option', option_id)
        self._say(USER, option.label)
        return self._advance(Stimulus.option(option_id))

    def send_text(self, text: str) -> Optional[Resolution]:
        """
        Simulate typed input. Empty input is ignored.

        Text naming an option of the current node selects it; otherwise the
        classifier (if any) may map it to an option on nodes that allow
        free-form interpretation.
        """
        if not text or not text.strip():
            return None
        node = self._require_current()
        self._say(USER, text)

        option_id = match_option_by_text(node, text)
        if option_id is None and node.allow_freeform_interpretation and self.classifier:
            suggested = self.classifier(node, text)
            if suggested is not None and node.option(suggested) is not None:
                option_id = suggested
            elif suggested is not None:
                logger.warning(f"Classifier returned unknown option {suggested} for node {node.id}")

        return self._advance(Stimulus(option_id=option_id, free_text=text))

    def send_timer_event(self, event: str) -> Resolution:
        stimulus = Stimulus.timer(event)
        self._require_current()
        self._say(SYSTEM, f"[timer: {event}]")
        return self._advance(stimulus)

    def send_availability(self, result: str) -> Resolution:
        stimulus = Stimulus.availability_result(result)
        self._require_current()
        self._say(SYSTEM, f"[agenda: {result}]")
        return self._advance(stimulus)

    # --- Internals ---

    def _require_current(self) -> Node:
        node = self.current_node
        if node is None:
            raise NotFound('Node', self.current_node_id or '<not started>')
        return node

    def _say(self, sender: str, text: str, node: Optional[Node] = None) -> None:
        options: Tuple[QuickReply, ...] = ()
        if node is not None and node.kind in OPTION_KINDS:
            options = tuple(QuickReply(o.id, o.label, o.value) for o in node.sorted_options())
        self.transcript.append(Turn(sender, text, node.id if node else None, options))

    def _emit(self, node: Node) -> None:
        text = render_template(node.message_template, self.variables)
        if text or (node.kind in OPTION_KINDS and node.options):
            self._say(BOT, text, node)

    def _advance(self, stimulus: Stimulus) -> Resolution:
        current = self._require_current()
        resolution = resolve_edge(self.snapshot.edges, current.id, stimulus)
        target = self.snapshot.node(resolution.target_node_id)
        if target is None:
            self.no_match = True
            self._say(BOT, NO_MATCH_NOTICE)
            logger.info(f"No transition from node {current.id} for {stimulus}")
            return NO_MATCH

        self.no_match = False
        self._enter(target)
        return resolution

    def _enter(self, node: Node) -> None:
        self.current_node_id = node.id
        self._emit(node)

        hops = 0
        while auto_advances(node):
            resolution = resolve_edge(self.snapshot.edges, node.id, Stimulus())
            following = self.snapshot.node(resolution.target_node_id)
            if following is None:
                break
            hops += 1
            if hops > self.max_auto_hops:
                logger.warning(f"Stopped auto-advance after {self.max_auto_hops} hops at node {node.id}")
                self._say(SYSTEM, HOP_LIMIT_NOTICE)
                break
            node = following
            self.current_node_id = node.id
            self._emit(node)

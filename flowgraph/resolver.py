"""
Transition resolution.

Given the edges of a flow, the node the conversation is sitting on and a
stimulus, decide which edge to follow. Resolution order, first match wins:

1. explicit option pick      -> edge keyed on (node, option)
2. timer / availability event -> edge whose condition value equals the event
3. free text                  -> first keyword edge contained in the text
4. anything else              -> the node's fallback edge
5. nothing matched            -> no transition; caller defers to free-form handling

An explicit option can never be overridden by a keyword, and fallback is
always the last resort. Edge creation guarantees at most one edge per match
key, so no tie-breaking is needed.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from flowgraph.model import AVAILABILITY_VALUES, TIMER_EVENTS, Edge, Node


@dataclass(frozen=True)
class Stimulus:
    """Input event driving a transition. Usually exactly one field is set."""
    option_id: Optional[str] = None
    free_text: Optional[str] = None
    timer_event: Optional[str] = None
    availability: Optional[str] = None

    def __post_init__(self):
        if self.timer_event is not None and self.timer_event not in TIMER_EVENTS:
            raise ValueError(f"Invalid timer event '{self.timer_event}'. Valid: {TIMER_EVENTS}")
        if self.availability is not None and self.availability not in AVAILABILITY_VALUES:
            raise ValueError(f"Invalid availability '{self.availability}'. Valid: {AVAILABILITY_VALUES}")

    @classmethod
    def option(cls, option_id: str) -> 'Stimulus':
        return cls(option_id=option_id)

    @classmethod
    def text(cls, free_text: str) -> 'Stimulus':
        return cls(free_text=free_text)

    @classmethod
    def timer(cls, event: str) -> 'Stimulus':
        return cls(timer_event=event)

    @classmethod
    def availability_result(cls, result: str) -> 'Stimulus':
        return cls(availability=result)


@dataclass(frozen=True)
class Resolution:
    """Outcome of a resolve call; `edge` is None when nothing matched."""
    edge: Optional[Edge]
    rule: str

    @property
    def target_node_id(self) -> Optional[str]:
        return self.edge.target_node_id if self.edge else None

    @property
    def matched(self) -> bool:
        return self.edge is not None


NO_MATCH = Resolution(edge=None, rule='none')


def resolve_edge(edges: Iterable[Edge], current_node_id: str, stimulus: Stimulus) -> Resolution:
    """Resolve a stimulus to the edge that should be followed, with the rule used."""
    outgoing: List[Edge] = [e for e in edges if e.source_node_id == current_node_id]

    if stimulus.option_id is not None:
        for edge in outgoing:
            if edge.source_option_id == stimulus.option_id:
                return Resolution(edge, 'option')

    if stimulus.timer_event is not None:
        for edge in outgoing:
            if edge.condition_kind == 'timeout' and edge.condition_value == stimulus.timer_event:
                return Resolution(edge, 'timer')

    if stimulus.availability is not None:
        for edge in outgoing:
            if edge.condition_kind == 'availability' and edge.condition_value == stimulus.availability:
                return Resolution(edge, 'availability')

    if stimulus.free_text:
        text = stimulus.free_text.lower()
        for edge in outgoing:
            if edge.condition_kind != 'keyword_match':
                continue
            keyword = (edge.condition_value or '').strip().lower()
            if keyword and keyword in text:
                return Resolution(edge, 'keyword')

    for edge in outgoing:
        if edge.is_fallback:
            return Resolution(edge, 'fallback')

    return NO_MATCH


def resolve(edges: Iterable[Edge], current_node_id: str, stimulus: Stimulus) -> Optional[str]:
    """Return the target node id for a stimulus, or None when nothing matched."""
    return resolve_edge(edges, current_node_id, stimulus).target_node_id


def match_option_by_text(node: Node, text: str) -> Optional[str]:
    """
    Map free text that literally names one of the node's options to that option.

    Comparison is on the trimmed, lower-cased label or value. Returns the
    option id or None.
    """
    needle = (text or '').strip().lower()
    if not needle:
        return None
    for option in node.sorted_options():
        if needle in (option.label.strip().lower(), option.value.strip().lower()):
            return option.id
    return None

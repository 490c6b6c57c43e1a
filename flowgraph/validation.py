"""
Whole-flow structural checks.

The graph store keeps a flow valid edit by edit; these checks look at a
snapshot as a whole (for example one loaded from a repository that was
written by other tools) and report what is wrong without changing it.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import networkx as nx

from flowgraph.model import TIMER_OPTIONS, FlowSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None


def build_graph(snapshot: FlowSnapshot) -> nx.DiGraph:
    """Directed graph of node ids; edges carry their edge id and option id."""
    graph = nx.DiGraph()
    for node in snapshot.nodes:
        graph.add_node(node.id, kind=node.kind, title=node.title)
    for edge in snapshot.edges:
        if graph.has_node(edge.source_node_id) and graph.has_node(edge.target_node_id):
            graph.add_edge(edge.source_node_id, edge.target_node_id,
                           edge_id=edge.id, option_id=edge.source_option_id)
    return graph


def _timer_pair_ok(node) -> bool:
    pairs = [(o.value, o.sort_order) for o in node.sorted_options()]
    return pairs == [(value, index) for index, (_label, value) in enumerate(TIMER_OPTIONS)]


def validate_flow(snapshot: FlowSnapshot) -> List[ValidationIssue]:
    """Return every structural problem found in the flow, in a stable order."""
    issues: List[ValidationIssue] = []
    nodes = {n.id: n for n in snapshot.nodes}
    options = {o.id: n.id for n in snapshot.nodes for o in n.options}

    starts = [n for n in snapshot.nodes if n.kind == 'start']
    if not starts:
        issues.append(ValidationIssue('missing_start', "Flow has no start node"))
    for extra in starts[1:]:
        issues.append(ValidationIssue('duplicate_start', "Flow has more than one start node", node_id=extra.id))

    for node in snapshot.nodes:
        if node.kind == 'timer' and not _timer_pair_ok(node):
            issues.append(ValidationIssue('timer_options', f"Timer '{node.title}' must own exactly the "
                                          f"responded/timeout options", node_id=node.id))

    seen_options = set()
    seen_fallbacks = set()
    for edge in snapshot.edges:
        source = nodes.get(edge.source_node_id)
        target = nodes.get(edge.target_node_id)
        if source is None or target is None:
            issues.append(ValidationIssue('dangling_edge', "Edge points at a missing node", edge_id=edge.id))
            continue
        if edge.source_option_id is not None and options.get(edge.source_option_id) != source.id:
            issues.append(ValidationIssue('dangling_edge', "Edge is keyed on an option its source does not own",
                                          node_id=source.id, edge_id=edge.id))
        if source.id == target.id:
            issues.append(ValidationIssue('self_loop', f"'{source.title}' connects to itself",
                                          node_id=source.id, edge_id=edge.id))
        if target.kind == 'start':
            issues.append(ValidationIssue('edge_into_start', "The start node has an incoming edge",
                                          node_id=target.id, edge_id=edge.id))
        if source.kind == 'end':
            issues.append(ValidationIssue('edge_from_end', f"End node '{source.title}' has an outgoing edge",
                                          node_id=source.id, edge_id=edge.id))

        if edge.source_option_id is not None:
            key = (source.id, edge.source_option_id)
            if key in seen_options:
                issues.append(ValidationIssue('duplicate_option_edge', "Option has more than one transition",
                                              node_id=source.id, edge_id=edge.id))
            seen_options.add(key)
        elif edge.is_fallback:
            if source.id in seen_fallbacks:
                issues.append(ValidationIssue('duplicate_fallback', f"'{source.title}' has more than one "
                                              f"fallback edge", node_id=source.id, edge_id=edge.id))
            seen_fallbacks.add(source.id)

    graph = build_graph(snapshot)
    if starts:
        reachable = nx.descendants(graph, starts[0].id) | {starts[0].id}
        for node in snapshot.nodes:
            if node.id not in reachable and node.kind != 'start':
                issues.append(ValidationIssue('unreachable', f"'{node.title}' cannot be reached from the start",
                                              node_id=node.id))

    for node in snapshot.nodes:
        if node.kind != 'end' and graph.out_degree(node.id) == 0:
            issues.append(ValidationIssue('dead_end', f"'{node.title}' has no outgoing edge", node_id=node.id))

    if issues:
        logger.info(f"Flow '{snapshot.flow.name}' has {len(issues)} structural issue(s)")
    return issues

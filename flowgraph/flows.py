"""
Flow catalog: flow-level management for the flow list.

Handles what happens to whole flows rather than to their graphs:
- listing (default flow first)
- renaming and editing the description
- switching a flow on or off, and choosing the single default flow
- deleting a flow with everything in it
- duplicating a flow with its nodes, options and edges under new ids

These calls go straight to the repository and are awaited by the operator,
unlike graph edits which go through the write queue.
"""

import logging
from typing import Dict, List, Optional

from flowgraph.errors import NotFound
from flowgraph.model import Flow, new_id, rows_to_graph

logger = logging.getLogger(__name__)

COPY_SUFFIX = " (Cópia)"


class FlowCatalog:
    """Flow list operations over a Repository."""

    def __init__(self, repository):
        self.repository = repository

    def list_flows(self, company_id: Optional[str] = None) -> List[Flow]:
        flows = [Flow.from_row(row) for row in self.repository.list_flows(company_id)]
        return sorted(flows, key=lambda f: (not f.is_default, f.name.lower()))

    def is_empty(self, company_id: Optional[str] = None) -> bool:
        """True when the company has no flow yet (its first flow becomes the default)."""
        return not self.repository.list_flows(company_id)

    def get_flow(self, flow_id: str) -> Flow:
        data = self.repository.load_flow(flow_id)
        if not data or not data.get('flow'):
            raise NotFound('Flow', flow_id)
        return Flow.from_row(data['flow'])

    def update_details(self, flow_id: str, name: str, description: Optional[str] = None) -> Flow:
        name = (name or '').strip()
        if not name:
            raise ValueError("Flow name cannot be empty")
        flow = self.get_flow(flow_id)
        flow.name = name
        flow.description = (description or '').strip() or None
        self.repository.update_flow(flow_id, {'name': flow.name, 'description': flow.description})
        logger.info(f"Renamed flow {flow_id} to '{name}'")
        return flow

    def set_active(self, flow_id: str, active: bool) -> Flow:
        flow = self.get_flow(flow_id)
        flow.is_active = bool(active)
        self.repository.update_flow(flow_id, {'is_active': flow.is_active})
        logger.info(f"Flow {flow_id} {'activated' if flow.is_active else 'deactivated'}")
        return flow

    def set_default(self, flow_id: str) -> Flow:
        """Make this the company's default flow; every other flow stops being default."""
        flow = self.get_flow(flow_id)
        self.repository.set_default_flow(flow_id, flow.company_id)
        flow.is_default = True
        logger.info(f"Flow {flow_id} is now the default")
        return flow

    def delete_flow(self, flow_id: str) -> None:
        flow = self.get_flow(flow_id)
        self.repository.delete_flow(flow_id)
        logger.info(f"Deleted flow '{flow.name}' ({flow_id})")

    def duplicate_flow(self, flow_id: str) -> Flow:
        """
        Copy a flow under new ids.

        The copy is inactive and never the default. Option edges keep pointing
        at the copied option; edges whose endpoints are missing are dropped.
        """
        data = self.repository.load_flow(flow_id)
        if not data or not data.get('flow'):
            raise NotFound('Flow', flow_id)
        source, nodes, edges = rows_to_graph(data['flow'], data.get('nodes') or [], data.get('edges') or [])

        flow = Flow(
            id=new_id(),
            name=f"{source.name}{COPY_SUFFIX}",
            is_active=False,
            is_default=False,
            description=source.description,
            company_id=source.company_id,
        )
        self.repository.create_flow(flow.to_row())

        node_ids: Dict[str, str] = {}
        option_ids: Dict[str, str] = {}
        for node in nodes:
            node_ids[node.id] = new_id()
            node.id = node_ids[node.id]
            node.flow_id = flow.id
            self.repository.create_node(node.to_row())
            for option in node.sorted_options():
                option_ids[option.id] = new_id()
                option.id = option_ids[option.id]
                option.node_id = node.id
                self.repository.create_option(option.to_row())

        copied = 0
        for edge in edges:
            if edge.source_node_id not in node_ids or edge.target_node_id not in node_ids:
                logger.warning(f"Not copying edge {edge.id}: an endpoint is missing")
                continue
            edge.id = new_id()
            edge.flow_id = flow.id
            edge.source_node_id = node_ids[edge.source_node_id]
            edge.target_node_id = node_ids[edge.target_node_id]
            if edge.source_option_id is not None:
                edge.source_option_id = option_ids.get(edge.source_option_id)
            self.repository.create_edge(edge.to_row())
            copied += 1

        logger.info(f"Duplicated flow {flow_id} as {flow.id} ({len(nodes)} nodes, {copied} edges)")
        return flow

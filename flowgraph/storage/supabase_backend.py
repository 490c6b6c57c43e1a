"""
Supabase Repository for flowgraph.

Implements the Repository protocol over the Supabase PostgreSQL tables
`conversation_flows`, `flow_nodes`, `flow_node_options` and `flow_edges`.

Requires: pip install supabase
"""

import logging
import os
from typing import Dict, Any, List, Optional, Tuple

from supabase import Client, create_client

logger = logging.getLogger(__name__)

FLOWS_TABLE = "conversation_flows"
NODES_TABLE = "flow_nodes"
OPTIONS_TABLE = "flow_node_options"
EDGES_TABLE = "flow_edges"


class SupabaseRepository:
    """
    Cloud repository using Supabase.

    Every write logs the failure and re-raises it so the write queue can
    report it to the operator.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None
    ):
        """
        Initialize SupabaseRepository.

        Args:
            client: Optional pre-configured Supabase client
            supabase_url: Supabase project URL (or use SUPABASE_URL env)
            supabase_key: Supabase key (or use SUPABASE_KEY env)
        """
        if client:
            self._client = client
        else:
            url = supabase_url or os.environ.get("SUPABASE_URL")
            key = supabase_key or os.environ.get("SUPABASE_KEY")

            if not url or not key:
                raise ValueError(
                    "Supabase URL and key required. "
                    "Set SUPABASE_URL and SUPABASE_KEY environment variables."
                )

            self._client = create_client(url, key)

    @property
    def backend_type(self) -> str:
        return "supabase"

    # --- Flow Operations ---

    def list_flows(self, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            query = self._client.table(FLOWS_TABLE).select("*")
            if company_id:
                query = query.eq("company_id", company_id)
            response = query.order("name").execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Failed to list flows: {e}")
            raise

    def create_flow(self, row: Dict[str, Any]) -> None:
        try:
            self._client.table(FLOWS_TABLE).insert(row).execute()
        except Exception as e:
            logger.error(f"Failed to create flow {row.get('id')}: {e}")
            raise

    def update_flow(self, flow_id: str, fields: Dict[str, Any]) -> None:
        try:
            self._client.table(FLOWS_TABLE)\
                .update(fields)\
                .eq("id", flow_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to update flow {flow_id}: {e}")
            raise

    def delete_flow(self, flow_id: str) -> None:
        """Delete a flow row; nodes, options and edges go with it (ON DELETE CASCADE)."""
        try:
            self._client.table(FLOWS_TABLE)\
                .delete()\
                .eq("id", flow_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to delete flow {flow_id}: {e}")
            raise

    def set_default_flow(self, flow_id: str, company_id: Optional[str] = None) -> None:
        try:
            query = self._client.table(FLOWS_TABLE).update({"is_default": False})
            if company_id:
                query = query.eq("company_id", company_id)
            query.neq("id", flow_id).execute()

            self._client.table(FLOWS_TABLE)\
                .update({"is_default": True})\
                .eq("id", flow_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to set default flow {flow_id}: {e}")
            raise

    def load_flow(self, flow_id: str) -> Optional[Dict[str, Any]]:
        """Load a flow, its nodes with nested options, and its edges."""
        try:
            flow_response = self._client.table(FLOWS_TABLE)\
                .select("*")\
                .eq("id", flow_id)\
                .execute()
            if not flow_response.data:
                return None

            nodes_response = self._client.table(NODES_TABLE)\
                .select("*, options:flow_node_options(*)")\
                .eq("flow_id", flow_id)\
                .order("display_order")\
                .execute()

            edges_response = self._client.table(EDGES_TABLE)\
                .select("*")\
                .eq("flow_id", flow_id)\
                .order("display_order")\
                .execute()
        except Exception as e:
            logger.error(f"Failed to load flow {flow_id}: {e}")
            raise

        nodes = nodes_response.data or []
        for node in nodes:
            node["options"] = sorted(node.get("options") or [], key=lambda r: r.get("display_order") or 0)
        logger.debug(f"load_flow: {len(nodes)} nodes, {len(edges_response.data or [])} edges")
        return {
            "flow": flow_response.data[0],
            "nodes": nodes,
            "edges": edges_response.data or [],
        }

    # --- Node Operations ---

    def create_node(self, row: Dict[str, Any]) -> None:
        try:
            self._client.table(NODES_TABLE).insert(row).execute()
        except Exception as e:
            logger.error(f"Failed to create node {row.get('id')}: {e}")
            raise

    def update_node(self, node_id: str, fields: Dict[str, Any]) -> None:
        try:
            self._client.table(NODES_TABLE)\
                .update(fields)\
                .eq("id", node_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to update node {node_id}: {e}")
            raise

    def delete_node(self, node_id: str) -> None:
        try:
            self._client.table(NODES_TABLE)\
                .delete()\
                .eq("id", node_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to delete node {node_id}: {e}")
            raise

    def batch_update_positions(self, positions: List[Tuple[str, int, int]]) -> None:
        # One update per node; PostgREST has no multi-row partial update
        for node_id, x, y in positions:
            try:
                self._client.table(NODES_TABLE)\
                    .update({"position_x": x, "position_y": y})\
                    .eq("id", node_id)\
                    .execute()
            except Exception as e:
                logger.error(f"Failed to save position of node {node_id}: {e}")
                raise

    # --- Edge Operations ---

    def create_edge(self, row: Dict[str, Any]) -> None:
        try:
            self._client.table(EDGES_TABLE).insert(row).execute()
        except Exception as e:
            logger.error(f"Failed to create edge {row.get('id')}: {e}")
            raise

    def delete_edge(self, edge_id: str) -> None:
        try:
            self._client.table(EDGES_TABLE)\
                .delete()\
                .eq("id", edge_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to delete edge {edge_id}: {e}")
            raise

    # --- Option Operations ---

    def create_option(self, row: Dict[str, Any]) -> None:
        try:
            self._client.table(OPTIONS_TABLE).insert(row).execute()
        except Exception as e:
            logger.error(f"Failed to create option {row.get('id')}: {e}")
            raise

    def update_option(self, option_id: str, fields: Dict[str, Any]) -> None:
        try:
            self._client.table(OPTIONS_TABLE)\
                .update(fields)\
                .eq("id", option_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to update option {option_id}: {e}")
            raise

    def delete_option(self, option_id: str) -> None:
        try:
            self._client.table(OPTIONS_TABLE)\
                .delete()\
                .eq("id", option_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to delete option {option_id}: {e}")
            raise

    def reorder_options(self, node_id: str, ordered_option_ids: List[str]) -> None:
        for index, option_id in enumerate(ordered_option_ids):
            try:
                self._client.table(OPTIONS_TABLE)\
                    .update({"display_order": index})\
                    .eq("id", option_id)\
                    .eq("node_id", node_id)\
                    .execute()
            except Exception as e:
                logger.error(f"Failed to reorder option {option_id} of node {node_id}: {e}")
                raise

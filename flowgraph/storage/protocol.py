"""
Repository Protocol Definition.

This module defines the persistence interface the graph store writes
through. Both JsonFileRepository (local files) and SupabaseRepository
(cloud) conform to this protocol.

All rows use the snake_case column names of the remote tables and are keyed
by the same ids the graph store uses.
"""

from typing import Protocol, Dict, Any, List, Optional, Tuple, runtime_checkable


@runtime_checkable
class Repository(Protocol):
    """
    Abstract protocol for flow repositories.

    Every method is synchronous; the write queue runs them off the event loop.
    Failures are raised, never swallowed.
    """

    # --- Backend Information ---

    @property
    def backend_type(self) -> str:
        """Return the backend type identifier ('json' or 'supabase')."""
        ...

    # --- Flow Operations ---

    def list_flows(self, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return the `conversation_flows` rows, only one company's if given."""
        ...

    def create_flow(self, row: Dict[str, Any]) -> None:
        """Insert a `conversation_flows` row."""
        ...

    def update_flow(self, flow_id: str, fields: Dict[str, Any]) -> None:
        """Update some columns of a flow (name, description, is_active)."""
        ...

    def delete_flow(self, flow_id: str) -> None:
        """Delete a flow together with its nodes, options and edges."""
        ...

    def set_default_flow(self, flow_id: str, company_id: Optional[str] = None) -> None:
        """Mark one flow as default and unset every other flow of the same company."""
        ...

    def load_flow(self, flow_id: str) -> Optional[Dict[str, Any]]:
        """
        Load one flow with its graph.

        Returns:
            None if the flow does not exist, otherwise a dict with keys:
            - flow: flow row
            - nodes: list of node rows, each with an 'options' list of option rows
            - edges: list of edge rows
        """
        ...

    # --- Node Operations ---

    def create_node(self, row: Dict[str, Any]) -> None:
        """Insert a `flow_nodes` row."""
        ...

    def update_node(self, node_id: str, fields: Dict[str, Any]) -> None:
        """
        Update some columns of a node.

        Args:
            node_id: The node's id
            fields: Column -> new value, only the changed columns
        """
        ...

    def delete_node(self, node_id: str) -> None:
        ...

    def batch_update_positions(self, positions: List[Tuple[str, int, int]]) -> None:
        """
        Persist node positions in one call.

        Args:
            positions: (node_id, x, y) triples with integer coordinates
        """
        ...

    # --- Edge Operations ---

    def create_edge(self, row: Dict[str, Any]) -> None:
        ...

    def delete_edge(self, edge_id: str) -> None:
        ...

    # --- Option Operations ---

    def create_option(self, row: Dict[str, Any]) -> None:
        ...

    def update_option(self, option_id: str, fields: Dict[str, Any]) -> None:
        ...

    def delete_option(self, option_id: str) -> None:
        ...

    def reorder_options(self, node_id: str, ordered_option_ids: List[str]) -> None:
        """Set `display_order` of each listed option to its index in the list."""
        ...

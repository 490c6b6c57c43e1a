"""
JSON-file Repository for flowgraph.

Implements the Repository protocol on the local filesystem, one JSON file
per entity. Used for offline editing and in tests.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from flowgraph.errors import NotFound

logger = logging.getLogger(__name__)


class JsonFileRepository:
    """
    Local file-based repository.

    Structure:
    - {data_dir}/flows/{uuid}.json: Flow rows
    - {data_dir}/nodes/{uuid}.json: Node rows (without options)
    - {data_dir}/options/{uuid}.json: Option rows
    - {data_dir}/edges/{uuid}.json: Edge rows
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.flows_dir = self.data_dir / "flows"
        self.nodes_dir = self.data_dir / "nodes"
        self.options_dir = self.data_dir / "options"
        self.edges_dir = self.data_dir / "edges"
        # Writes arrive from worker threads
        self._lock = threading.Lock()

        for directory in (self.flows_dir, self.nodes_dir, self.options_dir, self.edges_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        return "json"

    # --- File helpers ---

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, path: Path, row: Dict[str, Any]) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(row, f, indent=2, ensure_ascii=False)

    def _read_all(self, directory: Path) -> List[Dict[str, Any]]:
        rows = []
        for path in directory.glob("*.json"):
            try:
                rows.append(self._read(path))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load {path}: {e}")
        return rows

    def _insert(self, directory: Path, row: Dict[str, Any]) -> None:
        if not row.get("id"):
            raise ValueError("Row missing id")
        with self._lock:
            self._write(directory / f"{row['id']}.json", row)

    def _update(self, directory: Path, entity: str, entity_id: str, fields: Dict[str, Any]) -> None:
        path = directory / f"{entity_id}.json"
        with self._lock:
            row = self._read(path)
            if row is None:
                raise NotFound(entity, entity_id)
            row.update(fields)
            self._write(path, row)

    def _delete(self, directory: Path, entity_id: str) -> bool:
        path = directory / f"{entity_id}.json"
        with self._lock:
            if path.exists():
                path.unlink()
                return True
        return False

    # --- Flow Operations ---

    def create_flow(self, row: Dict[str, Any]) -> None:
        self._insert(self.flows_dir, row)

    def list_flows(self, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = self._read_all(self.flows_dir)
        if company_id:
            rows = [r for r in rows if r.get("company_id") == company_id]
        return sorted(rows, key=lambda r: r.get("name") or "")

    def update_flow(self, flow_id: str, fields: Dict[str, Any]) -> None:
        self._update(self.flows_dir, "Flow", flow_id, fields)

    def delete_flow(self, flow_id: str) -> bool:
        """Delete the flow file and every node, option and edge file of the flow."""
        nodes = [r for r in self._read_all(self.nodes_dir) if r.get("flow_id") == flow_id]
        node_ids = {n["id"] for n in nodes}
        for row in self._read_all(self.edges_dir):
            if row.get("flow_id") == flow_id:
                self._delete(self.edges_dir, row["id"])
        for row in self._read_all(self.options_dir):
            if row.get("node_id") in node_ids:
                self._delete(self.options_dir, row["id"])
        for node_id in node_ids:
            self._delete(self.nodes_dir, node_id)
        deleted = self._delete(self.flows_dir, flow_id)
        logger.info(f"Deleted flow {flow_id} ({len(node_ids)} nodes)")
        return deleted

    def set_default_flow(self, flow_id: str, company_id: Optional[str] = None) -> None:
        if self._read(self.flows_dir / f"{flow_id}.json") is None:
            raise NotFound("Flow", flow_id)
        for row in self._read_all(self.flows_dir):
            if row["id"] != flow_id and row.get("company_id") == company_id and row.get("is_default"):
                self._update(self.flows_dir, "Flow", row["id"], {"is_default": False})
        self._update(self.flows_dir, "Flow", flow_id, {"is_default": True})

    def load_flow(self, flow_id: str) -> Optional[Dict[str, Any]]:
        flow = self._read(self.flows_dir / f"{flow_id}.json")
        if flow is None:
            return None

        nodes = [r for r in self._read_all(self.nodes_dir) if r.get("flow_id") == flow_id]
        node_ids = {n["id"] for n in nodes}
        options: Dict[str, List[Dict[str, Any]]] = {}
        for row in self._read_all(self.options_dir):
            if row.get("node_id") in node_ids:
                options.setdefault(row["node_id"], []).append(row)
        for node in nodes:
            node["options"] = sorted(options.get(node["id"], []), key=lambda r: r.get("display_order") or 0)

        edges = [r for r in self._read_all(self.edges_dir) if r.get("flow_id") == flow_id]
        return {
            "flow": flow,
            "nodes": sorted(nodes, key=lambda r: r.get("display_order") or 0),
            "edges": sorted(edges, key=lambda r: r.get("display_order") or 0),
        }

    # --- Node Operations ---

    def create_node(self, row: Dict[str, Any]) -> None:
        self._insert(self.nodes_dir, {k: v for k, v in row.items() if k != "options"})

    def update_node(self, node_id: str, fields: Dict[str, Any]) -> None:
        self._update(self.nodes_dir, "Node", node_id, fields)

    def delete_node(self, node_id: str) -> bool:
        return self._delete(self.nodes_dir, node_id)

    def batch_update_positions(self, positions: List[Tuple[str, int, int]]) -> None:
        """Save positions; nodes without a file are skipped, like an update matching no row."""
        saved = 0
        for node_id, x, y in positions:
            try:
                self._update(self.nodes_dir, "Node", node_id, {"position_x": x, "position_y": y})
                saved += 1
            except NotFound:
                logger.warning(f"Skipping position of missing node {node_id}")
        logger.debug(f"Saved {saved} of {len(positions)} node positions")

    # --- Edge Operations ---

    def create_edge(self, row: Dict[str, Any]) -> None:
        self._insert(self.edges_dir, row)

    def delete_edge(self, edge_id: str) -> bool:
        return self._delete(self.edges_dir, edge_id)

    # --- Option Operations ---

    def create_option(self, row: Dict[str, Any]) -> None:
        self._insert(self.options_dir, row)

    def update_option(self, option_id: str, fields: Dict[str, Any]) -> None:
        self._update(self.options_dir, "Option", option_id, fields)

    def delete_option(self, option_id: str) -> bool:
        return self._delete(self.options_dir, option_id)

    def reorder_options(self, node_id: str, ordered_option_ids: List[str]) -> None:
        for index, option_id in enumerate(ordered_option_ids):
            self._update(self.options_dir, "Option", option_id, {"display_order": index})

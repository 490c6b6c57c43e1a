"""
Canvas Controller - Single source of truth for canvas interaction state.

This controller turns pointer, wheel and touch events from the UI into
graph-store calls:
- press on a node header starts dragging it (moveNode on every move)
- press on the background starts panning
- activating an output handle starts a connection; the next click on any
  node completes it with addEdge
- wheel, zoom buttons and pinch change the zoom scalar

All event coordinates are device pixels relative to the canvas element.
Pan, zoom and the connection in progress are never persisted.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

from flowgraph.canvas.constants import (
    CTRL_WHEEL_ZOOM,
    HANDLE_RADIUS,
    HEADER_HEIGHT,
    NODE_WIDTH,
    NODE_WIDTH_MOBILE,
    WHEEL_ZOOM,
    ZOOM_IN_FACTOR,
    ZOOM_OUT_FACTOR,
)
from flowgraph.canvas.geometry import (
    Point,
    ViewTransform,
    edge_anchors,
    estimate_node_height,
    output_anchor,
)
from flowgraph.model import Edge

logger = logging.getLogger(__name__)

IDLE = 'idle'
PANNING = 'panning'
DRAGGING_NODE = 'dragging_node'
CONNECTING = 'connecting'

BACKGROUND = 'background'
NODE_HEADER = 'node_header'
NODE_BODY = 'node_body'
OUTPUT_HANDLE = 'output_handle'


@dataclass(frozen=True)
class Hit:
    """What a pointer press landed on."""
    kind: str = BACKGROUND
    node_id: Optional[str] = None
    option_id: Optional[str] = None


@dataclass(frozen=True)
class CanvasState:
    """Immutable snapshot of the interaction state."""
    mode: str = IDLE
    node_id: Optional[str] = None
    option_id: Optional[str] = None
    grab_offset: Optional[Point] = None
    last_pointer: Optional[Point] = None
    preview_point: Optional[Point] = None
    pinch_distance: Optional[float] = None


class CanvasController:
    """Manages canvas interaction state on top of a GraphStore."""

    def __init__(self, store, mobile: bool = False):
        self.store = store
        self.node_width = NODE_WIDTH_MOBILE if mobile else NODE_WIDTH
        self.view = ViewTransform()
        self.selected_node_id: Optional[str] = None
        self._state = CanvasState()
        self._on_state_change: Optional[Callable[[CanvasState], None]] = None

    @property
    def state(self) -> CanvasState:
        return self._state

    @property
    def mode(self) -> str:
        return self._state.mode

    def set_on_state_change(self, callback: Callable[[CanvasState], None]):
        self._on_state_change = callback

    def _set_state(self, state: CanvasState) -> CanvasState:
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)
        return state

    # --- Hit detection ---

    def hit_test(self, x: float, y: float) -> Hit:
        """Find what lies under a device point; topmost (last drawn) node wins."""
        cx, cy = self.view.to_canvas(x, y)
        radius = HANDLE_RADIUS / self.view.zoom

        for node in reversed(self.store.nodes):
            if node.kind != 'end':
                for option in node.sorted_options():
                    hx, hy = output_anchor(node, self.node_width, option.id)
                    if math.hypot(cx - hx, cy - hy) <= radius:
                        return Hit(OUTPUT_HANDLE, node.id, option.id)
                hx, hy = output_anchor(node, self.node_width)
                if math.hypot(cx - hx, cy - hy) <= radius:
                    return Hit(OUTPUT_HANDLE, node.id)

            left, top = node.position.x, node.position.y
            if left <= cx <= left + self.node_width and top <= cy <= top + estimate_node_height(node):
                kind = NODE_HEADER if cy <= top + HEADER_HEIGHT else NODE_BODY
                return Hit(kind, node.id)

        return Hit()

    # --- Pointer events ---

    def pointer_down(self, x: float, y: float, hit: Optional[Hit] = None) -> CanvasState:
        """
        Handle a press (mouse down or tap).

        While connecting, a press on any node completes the connection and a
        press on the background cancels it. Store errors from the completed
        connection propagate after the controller has returned to idle.
        """
        hit = hit or self.hit_test(x, y)
        state = self._state

        if state.mode == CONNECTING:
            if hit.node_id is None:
                self.selected_node_id = None
                return self.cancel()
            self.connect_to(hit.node_id)
            return self._state

        if hit.kind == OUTPUT_HANDLE:
            return self.start_connection(hit.node_id, hit.option_id, pointer=(x, y))

        if hit.kind == NODE_HEADER:
            node = self.store.node(hit.node_id)
            cx, cy = self.view.to_canvas(x, y)
            self.selected_node_id = node.id
            return self._set_state(CanvasState(
                mode=DRAGGING_NODE,
                node_id=node.id,
                grab_offset=(cx - node.position.x, cy - node.position.y),
                last_pointer=(x, y),
            ))

        if hit.kind == NODE_BODY:
            self.selected_node_id = hit.node_id
            return self._set_state(replace(state, last_pointer=(x, y)))

        self.selected_node_id = None
        return self._set_state(CanvasState(mode=PANNING, last_pointer=(x, y)))

    def pointer_move(self, x: float, y: float) -> CanvasState:
        state = self._state

        if state.mode == PANNING and state.last_pointer:
            lx, ly = state.last_pointer
            self.view = self.view.panned(x - lx, y - ly)
        elif state.mode == DRAGGING_NODE:
            cx, cy = self.view.to_canvas(x, y)
            gx, gy = state.grab_offset
            self.store.move_node(state.node_id, cx - gx, cy - gy)
        elif state.mode == CONNECTING:
            return self._set_state(replace(state, last_pointer=(x, y), preview_point=self.view.to_canvas(x, y)))

        return self._set_state(replace(state, last_pointer=(x, y)))

    def pointer_up(self) -> CanvasState:
        """Release ends a drag or a pan; a connection in progress survives it."""
        if self._state.mode in (PANNING, DRAGGING_NODE):
            return self._set_state(CanvasState(last_pointer=self._state.last_pointer))
        return self._state

    def cancel(self) -> CanvasState:
        return self._set_state(CanvasState())

    # --- Connections ---

    def start_connection(self, node_id: str, option_id: Optional[str] = None,
                         pointer: Optional[Point] = None) -> CanvasState:
        self.store.node(node_id)
        preview = self.view.to_canvas(*pointer) if pointer else None
        return self._set_state(CanvasState(
            mode=CONNECTING,
            node_id=node_id,
            option_id=option_id,
            last_pointer=pointer,
            preview_point=preview,
        ))

    def connect_to(self, target_node_id: str) -> Edge:
        """Complete the pending connection onto `target_node_id`."""
        state = self._state
        if state.mode != CONNECTING:
            raise RuntimeError("No connection in progress")
        self._set_state(CanvasState())
        edge = self.store.add_edge(state.node_id, target_node_id, source_option_id=state.option_id)
        logger.debug(f"Connected {state.node_id} -> {target_node_id}")
        return edge

    def connection_preview(self) -> Optional[Tuple[Point, Point]]:
        """Line from the source handle to the pointer while connecting."""
        state = self._state
        if state.mode != CONNECTING or state.preview_point is None:
            return None
        source = self.store.get_node(state.node_id)
        if source is None:
            return None
        return output_anchor(source, self.node_width, state.option_id), state.preview_point

    # --- Zoom and pan ---

    def wheel(self, delta_y: float, shift: bool = False, ctrl: bool = False) -> ViewTransform:
        """Shift pans horizontally, otherwise the wheel zooms."""
        if shift:
            self.view = self.view.panned(-delta_y, 0)
        else:
            smaller, larger = CTRL_WHEEL_ZOOM if ctrl else WHEEL_ZOOM
            self.view = self.view.zoomed(smaller if delta_y > 0 else larger)
        return self.view

    def zoom_in(self) -> ViewTransform:
        self.view = self.view.zoomed(ZOOM_IN_FACTOR)
        return self.view

    def zoom_out(self) -> ViewTransform:
        self.view = self.view.zoomed(ZOOM_OUT_FACTOR)
        return self.view

    def reset_view(self) -> ViewTransform:
        self.view = ViewTransform()
        return self.view

    # --- Touch ---

    def touch_start(self, points: Sequence[Point]) -> CanvasState:
        """One finger behaves like a pointer press, two fingers start a pinch."""
        if len(points) >= 2:
            (x1, y1), (x2, y2) = points[0], points[1]
            distance = math.hypot(x2 - x1, y2 - y1)
            return self._set_state(replace(self._state, pinch_distance=distance or None))
        if len(points) == 1:
            return self.pointer_down(*points[0])
        return self._state

    def touch_move(self, points: Sequence[Point]) -> CanvasState:
        state = self._state
        if len(points) >= 2 and state.pinch_distance:
            (x1, y1), (x2, y2) = points[0], points[1]
            distance = math.hypot(x2 - x1, y2 - y1)
            if distance:
                self.view = self.view.zoomed(distance / state.pinch_distance)
                return self._set_state(replace(state, pinch_distance=distance))
            return state
        if len(points) == 1:
            return self.pointer_move(*points[0])
        return state

    def touch_end(self) -> CanvasState:
        state = self.pointer_up()
        if state.pinch_distance is not None:
            return self._set_state(replace(state, pinch_distance=None))
        return state

    # --- Rendering helpers ---

    def visible_edges(self) -> List[Tuple[Edge, Point, Point]]:
        """Edges whose endpoints both exist, with their device-space anchors."""
        result = []
        for edge in self.store.edges:
            source = self.store.get_node(edge.source_node_id)
            target = self.store.get_node(edge.target_node_id)
            if source is None or target is None:
                continue
            start, end = edge_anchors(edge, source, target, self.node_width)
            result.append((edge, self.view.to_device(*start), self.view.to_device(*end)))
        return result

"""
Canvas geometry: pan/zoom transform, node card metrics and edge paths.

Device coordinates are pixels relative to the canvas element; canvas
coordinates are the space node positions live in.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from flowgraph.canvas.constants import (
    BADGE_HEIGHT,
    CONTENT_GAP,
    CONTENT_PADDING,
    CURVE_DIVISOR,
    HANDLE_ANCHOR_Y,
    HEADER_HEIGHT,
    MAX_ZOOM,
    MESSAGE_BOX_HEIGHT,
    MIN_CURVE_OFFSET,
    MIN_ZOOM,
    OPTION_GAP,
    OPTION_HEIGHT,
    OPTIONS_LABEL_HEIGHT,
)
from flowgraph.model import Edge, Node

Point = Tuple[float, float]


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


@dataclass(frozen=True)
class ViewTransform:
    """translate(offset) then scale(zoom)."""
    offset_x: float = 0.0
    offset_y: float = 0.0
    zoom: float = 1.0

    def to_canvas(self, x: float, y: float) -> Point:
        return (x - self.offset_x) / self.zoom, (y - self.offset_y) / self.zoom

    def to_device(self, x: float, y: float) -> Point:
        return x * self.zoom + self.offset_x, y * self.zoom + self.offset_y

    def panned(self, dx: float, dy: float) -> 'ViewTransform':
        return ViewTransform(self.offset_x + dx, self.offset_y + dy, self.zoom)

    def zoomed(self, factor: float) -> 'ViewTransform':
        return ViewTransform(self.offset_x, self.offset_y, clamp_zoom(self.zoom * factor))


def _has_badges(node: Node) -> Tuple[bool, bool, bool]:
    return bool(node.message_template), bool(node.action_kind), bool(node.extract_fields)


def estimate_node_height(node: Node) -> float:
    """Approximate rendered height of a node card, on the layout `option_y_offset` assumes."""
    blocks = [height for present, height in zip(_has_badges(node), (MESSAGE_BOX_HEIGHT, BADGE_HEIGHT, BADGE_HEIGHT))
              if present]
    if node.options:
        count = len(node.options)
        blocks.append(OPTIONS_LABEL_HEIGHT + count * OPTION_HEIGHT + (count - 1) * OPTION_GAP)
    content = sum(blocks) + CONTENT_GAP * max(len(blocks) - 1, 0)
    return HEADER_HEIGHT + 2 * CONTENT_PADDING + content


def option_y_offset(node: Node, option_id: str) -> float:
    """Vertical offset of an option's output handle from the card's top edge."""
    offset = HEADER_HEIGHT + CONTENT_PADDING
    elements = 0
    for present, height in zip(_has_badges(node), (MESSAGE_BOX_HEIGHT, BADGE_HEIGHT, BADGE_HEIGHT)):
        if not present:
            continue
        if elements:
            offset += CONTENT_GAP
        offset += height
        elements += 1
    if elements:
        offset += CONTENT_GAP
    offset += OPTIONS_LABEL_HEIGHT

    ids = [o.id for o in node.sorted_options()]
    if option_id in ids:
        offset += ids.index(option_id) * (OPTION_HEIGHT + OPTION_GAP)
        offset += OPTION_HEIGHT / 2
    return offset


def output_anchor(node: Node, width: float, option_id: Optional[str] = None) -> Point:
    """Right-hand side handle of a node, or of one of its options."""
    if option_id is None:
        return node.position.x + width, node.position.y + HANDLE_ANCHOR_Y
    return node.position.x + width, node.position.y + option_y_offset(node, option_id)


def input_anchor(node: Node) -> Point:
    return node.position.x, node.position.y + HANDLE_ANCHOR_Y


def edge_anchors(edge: Edge, source: Node, target: Node, width: float) -> Tuple[Point, Point]:
    return output_anchor(source, width, edge.source_option_id), input_anchor(target)


def bezier_path(source: Point, target: Point) -> str:
    """Horizontal S-curve as an SVG path."""
    (sx, sy), (tx, ty) = source, target
    curve = max(MIN_CURVE_OFFSET, abs(tx - sx) / CURVE_DIVISOR)
    return f"M {sx} {sy} C {sx + curve} {sy}, {tx - curve} {ty}, {tx} {ty}"


def midpoint(source: Point, target: Point) -> Point:
    return (source[0] + target[0]) / 2, (source[1] + target[1]) / 2

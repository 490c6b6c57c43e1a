"""
Canvas interaction for the flow editor.

- CanvasController: pointer/wheel/touch state machine over a GraphStore
- ViewTransform: pan and zoom between device and canvas coordinates
- geometry helpers for node cards and edge paths

Usage:
    from flowgraph.canvas import CanvasController
"""

from flowgraph.canvas.constants import MAX_ZOOM, MIN_ZOOM, NODE_WIDTH, NODE_WIDTH_MOBILE
from flowgraph.canvas.controller import (
    BACKGROUND,
    CONNECTING,
    DRAGGING_NODE,
    IDLE,
    NODE_BODY,
    NODE_HEADER,
    OUTPUT_HANDLE,
    PANNING,
    CanvasController,
    CanvasState,
    Hit,
)
from flowgraph.canvas.geometry import ViewTransform, bezier_path, clamp_zoom, edge_anchors

__all__ = [
    'CanvasController',
    'CanvasState',
    'Hit',
    'ViewTransform',
    'bezier_path',
    'clamp_zoom',
    'edge_anchors',
    'IDLE',
    'PANNING',
    'DRAGGING_NODE',
    'CONNECTING',
    'BACKGROUND',
    'NODE_HEADER',
    'NODE_BODY',
    'OUTPUT_HANDLE',
    'MIN_ZOOM',
    'MAX_ZOOM',
    'NODE_WIDTH',
    'NODE_WIDTH_MOBILE',
]

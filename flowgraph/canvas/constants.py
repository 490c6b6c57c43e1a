"""
Shared constants for the flow canvas.

These values mirror the node card layout drawn by the UI. Keep them in sync!
"""

# Zoom scalar limits
MIN_ZOOM = 0.25
MAX_ZOOM = 2.0

# Zoom buttons
ZOOM_IN_FACTOR = 1.2
ZOOM_OUT_FACTOR = 0.8

# Wheel zoom steps (ctrl/cmd held, plain wheel)
CTRL_WHEEL_ZOOM = (0.9, 1.1)
WHEEL_ZOOM = (0.95, 1.05)

# Node card width in pixels
NODE_WIDTH = 300
NODE_WIDTH_MOBILE = 220

# Vertical offset of the input handle and the node-level output handle
HANDLE_ANCHOR_Y = 32

# Radius in pixels for hitting an output handle
HANDLE_RADIUS = 12

# Card layout used to estimate heights and option anchors
HEADER_HEIGHT = 36
CONTENT_PADDING = 12
CONTENT_GAP = 8
MESSAGE_BOX_HEIGHT = 70
BADGE_HEIGHT = 22
OPTIONS_LABEL_HEIGHT = 9 + 14 + 4
OPTION_HEIGHT = 26
OPTION_GAP = 4

# Bezier control point offset: max(MIN_CURVE_OFFSET, dx / CURVE_DIVISOR)
MIN_CURVE_OFFSET = 60
CURVE_DIVISOR = 2.5

# Background grid spacing at zoom 1
GRID_SIZE = 20

"""NiceGUI operator surfaces for flowgraph."""

from flowgraph.ui.preview_dialog import render_preview_dialog

__all__ = ['render_preview_dialog']

"""
Tests for canvas geometry and the interaction state machine.
"""

import pytest

from flowgraph.canvas import (
    BACKGROUND,
    CONNECTING,
    DRAGGING_NODE,
    IDLE,
    MAX_ZOOM,
    MIN_ZOOM,
    NODE_BODY,
    NODE_HEADER,
    OUTPUT_HANDLE,
    PANNING,
    CanvasController,
    ViewTransform,
    bezier_path,
)
from flowgraph.canvas.constants import CONTENT_PADDING, HEADER_HEIGHT, OPTION_HEIGHT
from flowgraph.canvas.geometry import estimate_node_height, option_y_offset, output_anchor
from flowgraph.errors import InvalidEdge
from flowgraph.model import Node, Option, Position


class TestGeometry:

    def test_transform_round_trip(self):
        view = ViewTransform(offset_x=40, offset_y=-20, zoom=2.0)
        assert view.to_canvas(140, 180) == (50, 100)
        assert view.to_device(50, 100) == (140, 180)

    def test_zoom_is_clamped(self):
        assert ViewTransform().zoomed(100).zoom == MAX_ZOOM
        assert ViewTransform().zoomed(0.001).zoom == MIN_ZOOM

    def test_option_handle_offsets(self):
        node = Node(id='q', flow_id='f', kind='question', title='Q', message_template='Qual?')
        node.options = [Option('o1', 'q', 'A', 'a', 0), Option('o2', 'q', 'B', 'b', 1)]

        assert option_y_offset(node, 'o1') == 166
        assert option_y_offset(node, 'o2') == 196

    def test_card_height_ends_below_last_option(self):
        node = Node(id='q', flow_id='f', kind='question', title='Q', message_template='Qual?')
        node.options = [Option('o1', 'q', 'A', 'a', 0), Option('o2', 'q', 'B', 'b', 1)]

        assert estimate_node_height(node) == 221
        assert estimate_node_height(node) == option_y_offset(node, 'o2') + OPTION_HEIGHT / 2 + CONTENT_PADDING

    def test_empty_card_height(self):
        node = Node(id='m', flow_id='f', kind='message', title='M')
        assert estimate_node_height(node) == HEADER_HEIGHT + 2 * CONTENT_PADDING

    def test_output_anchor(self):
        node = Node(id='n', flow_id='f', kind='message', title='M', position=Position(100, 100))
        assert output_anchor(node, 300) == (400, 132)

    def test_bezier_path(self):
        assert bezier_path((0, 0), (300, 100)) == "M 0 0 C 120.0 0, 180.0 100, 300 100"
        assert bezier_path((0, 0), (30, 0)) == "M 0 0 C 60 0, -30 0, 30 0"


@pytest.fixture
def canvas(store):
    return CanvasController(store)


@pytest.fixture
def target(store):
    return store.add_node('message', position=(600, 100))


class TestHitTest:

    def test_regions(self, canvas):
        assert canvas.hit_test(150, 110).kind == NODE_HEADER
        assert canvas.hit_test(150, 150).kind == NODE_BODY
        assert canvas.hit_test(400, 132).kind == OUTPUT_HANDLE
        assert canvas.hit_test(900, 900).kind == BACKGROUND

    def test_follows_the_view(self, canvas):
        canvas.view = ViewTransform(offset_x=-100, offset_y=0, zoom=1.0)
        hit = canvas.hit_test(50, 110)
        assert (hit.kind, hit.node_id) == (NODE_HEADER, 'start')

    def test_end_nodes_have_no_handle(self, store, canvas):
        end = store.add_node('end', position=(100, 400))
        assert canvas.hit_test(400, 432).kind != OUTPUT_HANDLE
        assert canvas.hit_test(150, 410).node_id == end.id

    def test_option_handle(self, store, canvas):
        question = store.add_node('question', position=(600, 400))
        store.update_node(question.id, message_template='Qual?')
        option = store.add_option(question.id, 'A', 'a')

        hit = canvas.hit_test(900, 400 + 166)

        assert (hit.kind, hit.node_id, hit.option_id) == (OUTPUT_HANDLE, question.id, option.id)


class TestDragAndPan:

    def test_drag_node_by_header(self, store, canvas):
        state = canvas.pointer_down(150, 110)
        assert state.mode == DRAGGING_NODE
        assert canvas.selected_node_id == 'start'

        canvas.pointer_move(250, 210)
        assert store.node('start').position == Position(200, 200)
        assert store.is_dirty

        assert canvas.pointer_up().mode == IDLE

    def test_drag_when_zoomed(self, store, canvas):
        canvas.view = ViewTransform(zoom=2.0)
        canvas.pointer_down(220, 220)
        canvas.pointer_move(320, 220)
        assert store.node('start').position == Position(150, 100)

    def test_body_press_only_selects(self, store, canvas):
        state = canvas.pointer_down(150, 150)
        assert state.mode == IDLE
        assert canvas.selected_node_id == 'start'
        canvas.pointer_move(300, 300)
        assert store.node('start').position == Position(100, 100)

    def test_background_pans_and_deselects(self, canvas):
        canvas.selected_node_id = 'start'
        assert canvas.pointer_down(10, 10).mode == PANNING
        assert canvas.selected_node_id is None

        canvas.pointer_move(30, 50)
        assert (canvas.view.offset_x, canvas.view.offset_y) == (20, 40)
        assert canvas.pointer_up().mode == IDLE

    def test_state_change_callback(self, canvas):
        modes = []
        canvas.set_on_state_change(lambda state: modes.append(state.mode))
        canvas.pointer_down(10, 10)
        canvas.pointer_up()
        assert modes == [PANNING, IDLE]


class TestConnecting:

    def test_handle_then_node(self, store, canvas, target):
        assert canvas.pointer_down(400, 132).mode == CONNECTING
        canvas.pointer_move(500, 300)
        assert canvas.connection_preview() == ((400, 132), (500, 300))

        canvas.pointer_down(650, 150)

        assert canvas.mode == IDLE
        edge = store.edges_from('start')[0]
        assert edge.target_node_id == target.id
        assert edge.condition_kind == 'fallback'

    def test_release_keeps_connecting(self, canvas, target):
        canvas.pointer_down(400, 132)
        assert canvas.pointer_up().mode == CONNECTING

    def test_background_cancels(self, store, canvas, target):
        canvas.pointer_down(400, 132)
        assert canvas.pointer_down(900, 900).mode == IDLE
        assert store.edges == []

    def test_store_error_propagates_and_resets(self, store, canvas):
        canvas.pointer_down(400, 132)
        with pytest.raises(InvalidEdge):
            canvas.pointer_down(150, 150)
        assert canvas.mode == IDLE
        assert store.edges == []

    def test_connect_without_connection(self, canvas):
        with pytest.raises(RuntimeError):
            canvas.connect_to('start')

    def test_option_connection(self, store, canvas, target):
        question = store.add_node('question', position=(100, 400))
        option = store.add_option(question.id, 'Sim', 'sim')
        canvas.start_connection(question.id, option.id)
        edge = canvas.connect_to(target.id)
        assert edge.source_option_id == option.id

    def test_visible_edges(self, store, canvas, target):
        store.add_edge('start', target.id)
        canvas.view = ViewTransform(offset_x=10, offset_y=0, zoom=1.0)

        [(edge, start, end)] = canvas.visible_edges()

        assert start == (410, 132)
        assert end == (610, 132)


class TestZoom:

    def test_wheel(self, canvas):
        assert canvas.wheel(100).zoom == pytest.approx(0.95)
        canvas.reset_view()
        assert canvas.wheel(-100, ctrl=True).zoom == pytest.approx(1.1)

    def test_shift_wheel_pans(self, canvas):
        view = canvas.wheel(30, shift=True)
        assert (view.offset_x, view.zoom) == (-30, 1.0)

    def test_buttons(self, canvas):
        assert canvas.zoom_in().zoom == pytest.approx(1.2)
        assert canvas.zoom_out().zoom == pytest.approx(0.96)
        for _ in range(20):
            canvas.zoom_in()
        assert canvas.view.zoom == MAX_ZOOM
        assert canvas.reset_view() == ViewTransform()

    def test_pinch(self, canvas):
        canvas.touch_start([(0, 0), (100, 0)])
        canvas.touch_move([(0, 0), (150, 0)])
        assert canvas.view.zoom == pytest.approx(1.5)

        canvas.touch_end()
        assert canvas.state.pinch_distance is None

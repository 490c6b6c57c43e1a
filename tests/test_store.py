"""
Tests for the GraphStore.

Local graph behaviour is checked directly; durable writes are checked by
draining the write queue into a MagicMock repository.
"""

import asyncio
import time

import pytest

from conftest import called_methods, drain
from flowgraph.errors import (
    DuplicateEdge,
    FixedOptionSet,
    InvalidEdge,
    InvalidKind,
    NotFound,
    ProtectedNode,
    SetMismatch,
)
from flowgraph.model import ActionConfig, DelayConfig, Position, TimerConfig
from flowgraph.store import AvailabilityPolicy, GraphStore


def start_count(store):
    return sum(1 for n in store.nodes if n.kind == 'start')


class TestAddNode:

    def test_defaults(self, store):
        node = store.add_node('message')

        assert node.title == 'Novo Mensagem'
        assert node.message_template == ''
        assert node.flow_id == 'flow-1'
        assert node.display_order == 1
        assert store.node(node.id) is node

    def test_default_configs(self, store):
        assert store.add_node('delay').config == DelayConfig(delay_seconds=5)
        assert store.add_node('timer').config == TimerConfig(timeout_minutes=10)
        assert store.add_node('end').message_template is None

    def test_placement_next_to_rightmost_node(self, store):
        node = store.add_node('message')
        assert node.position == Position(450, 100)

    def test_placement_next_to_selected_node(self, store):
        node = store.add_node('message', near_node_id='start')
        assert node.position == Position(450, 150)

    def test_explicit_position_is_rounded(self, store):
        node = store.add_node('question', position=(10.4, 20.6))
        assert node.position == Position(10, 21)

    def test_invalid_kind_changes_nothing(self, store, repository):
        with pytest.raises(InvalidKind):
            store.add_node('qualify')
        assert len(store.nodes) == 1
        drain(store)
        assert repository.method_calls == []

    def test_second_start_rejected(self, store):
        with pytest.raises(InvalidKind):
            store.add_node('start')
        assert start_count(store) == 1

    def test_timer_gets_fixed_option_pair(self, store):
        timer = store.add_node('timer')

        options = timer.sorted_options()
        assert [(o.label, o.value, o.sort_order) for o in options] == [
            ('Respondeu', 'responded', 0),
            ('Timeout', 'timeout', 1),
        ]
        assert all(o.node_id == timer.id for o in options)

    def test_timer_persisted_as_one_write(self, store, repository):
        timer = store.add_node('timer')
        assert store.writes.pending_count == 1

        drain(store)
        assert called_methods(repository) == ['create_node', 'create_option', 'create_option']
        node_row = repository.create_node.call_args[0][0]
        assert node_row['id'] == timer.id
        assert node_row['node_type'] == 'timer'
        assert node_row['action_config'] == {'timeout_minutes': 10}


class TestUniqueness:

    def test_start_survives_any_add_delete_sequence(self, store):
        created = [store.add_node(kind) for kind in ('message', 'question', 'timer', 'end', 'action')]
        for node in created[::2]:
            store.delete_node(node.id)
        store.add_node('delay')
        store.duplicate_node(created[1].id)

        assert start_count(store) == 1

    def test_start_is_protected(self, store):
        with pytest.raises(ProtectedNode):
            store.delete_node('start')
        assert store.start_node() is not None

    def test_start_cannot_be_duplicated(self, store):
        with pytest.raises(InvalidKind):
            store.duplicate_node('start')


class TestDeleteNode:

    def test_cascade_completeness(self, store):
        question = store.add_node('question')
        yes = store.add_option(question.id, 'Sim', 'sim')
        end = store.add_node('end')
        store.add_edge('start', question.id)
        store.add_edge(question.id, end.id, source_option_id=yes.id)

        store.delete_node(question.id)

        assert all(not e.touches(question.id) for e in store.edges)
        assert all(o.node_id != question.id for n in store.nodes for o in n.options)
        assert store.get_node(question.id) is None

    def test_delete_writes_children_before_node(self, store, repository):
        question = store.add_node('question')
        store.add_option(question.id, 'Sim', 'sim')
        store.add_edge('start', question.id)
        drain(store)
        repository.reset_mock()

        store.delete_node(question.id)
        drain(store)

        assert called_methods(repository) == ['delete_edge', 'delete_option', 'delete_node']

    def test_missing_node(self, store):
        with pytest.raises(NotFound):
            store.delete_node('nope')


class TestDuplicateNode:

    def test_copies_fields_and_options_not_edges(self, store):
        question = store.add_node('question', position=(500, 200))
        store.update_node(question.id, title='Escolha', message_template='Qual?')
        store.add_option(question.id, 'Sim', 'sim')
        store.add_option(question.id, 'Não', 'nao')
        store.add_edge('start', question.id)

        copy = store.duplicate_node(question.id)

        assert copy.id != question.id
        assert copy.title == 'Escolha (cópia)'
        assert copy.message_template == 'Qual?'
        assert copy.position == Position(550, 280)
        assert [o.label for o in copy.sorted_options()] == ['Sim', 'Não']
        assert {o.id for o in copy.options}.isdisjoint({o.id for o in question.options})
        assert all(o.node_id == copy.id for o in copy.options)
        assert not any(e.touches(copy.id) for e in store.edges)

    def test_missing_node(self, store):
        with pytest.raises(NotFound):
            store.duplicate_node('nope')


class TestUpdateNode:

    def test_merges_fields(self, store, repository):
        node = store.add_node('message')
        drain(store)
        repository.reset_mock()

        store.update_node(node.id, title='Boas-vindas', message_template='Olá {nome}!')
        drain(store)

        assert node.title == 'Boas-vindas'
        assert node.message_template == 'Olá {nome}!'
        node_id, fields = repository.update_node.call_args[0]
        assert node_id == node.id
        assert fields == {'message_template': 'Olá {nome}!', 'title': 'Boas-vindas'}

    def test_kind_is_fixed(self, store):
        node = store.add_node('message')
        with pytest.raises(InvalidKind):
            store.update_node(node.id, kind='question')
        assert node.kind == 'message'

    def test_unknown_field(self, store):
        node = store.add_node('message')
        with pytest.raises(ValueError):
            store.update_node(node.id, color='red')

    def test_action_kind_and_config(self, store):
        node = store.add_node('action')
        store.update_node(node.id, action_kind='send_pdf', config={'url': 'https://x/y.pdf'})

        assert node.action_kind == 'send_pdf'
        assert node.config == ActionConfig(action_kind='send_pdf', extra=(('url', 'https://x/y.pdf'),))

    def test_invalid_action_kind(self, store):
        node = store.add_node('action')
        with pytest.raises(ValueError):
            store.update_node(node.id, action_kind='launch_rocket')
        assert node.action_kind is None

    def test_extract_fields(self, store, repository):
        node = store.add_node('question')
        store.update_node(node.id, extract_fields='customer_name, event_date,customer_name')
        assert node.extract_fields == ('customer_name', 'event_date')

    def test_missing_node(self, store):
        with pytest.raises(NotFound):
            store.update_node('nope', title='x')


class TestLayout:

    def test_move_is_local_and_marks_dirty(self, store, repository):
        store.move_node('start', 123.4, 56.7)

        assert store.node('start').position == Position(123.4, 56.7)
        assert store.is_dirty
        assert store.writes.pending_count == 0

    def test_save_layout_batches_rounded_positions(self, store, repository):
        other = store.add_node('end', position=(700, 100))
        store.move_node('start', 123.4, 56.7)

        store.save_layout()
        drain(store)

        repository.batch_update_positions.assert_called_once_with([('start', 123, 57), (other.id, 700, 100)])
        assert not store.is_dirty

    def test_failed_save_keeps_dirty(self, store, repository):
        repository.batch_update_positions.side_effect = Exception('offline')
        store.move_node('start', 10, 10)

        store.save_layout()
        drain(store)

        assert store.is_dirty
        assert len(store.writes.failures) == 1

    def test_move_during_save_keeps_dirty(self, store, repository):
        store.move_node('start', 10, 10)
        store.save_layout()
        store.move_node('start', 20, 20)
        drain(store)

        assert store.is_dirty


class TestAddEdge:

    @pytest.fixture
    def question(self, store):
        node = store.add_node('question')
        store.add_option(node.id, 'Sim', 'sim')
        store.add_option(node.id, 'Não', 'nao')
        return node

    def test_node_level_edge_is_fallback(self, store, question):
        edge = store.add_edge('start', question.id)
        assert edge.condition_kind == 'fallback'
        assert edge.source_option_id is None

    def test_option_edge(self, store, question):
        end = store.add_node('end')
        option = question.sorted_options()[0]
        edge = store.add_edge(question.id, end.id, source_option_id=option.id)
        assert edge.condition_kind == 'option_selected'
        assert edge.source_option_id == option.id

    def test_self_loop(self, store, question):
        with pytest.raises(InvalidEdge):
            store.add_edge(question.id, question.id)

    def test_edge_into_start(self, store, question):
        with pytest.raises(InvalidEdge):
            store.add_edge(question.id, 'start')

    def test_edge_out_of_end(self, store):
        end = store.add_node('end')
        message = store.add_node('message')
        with pytest.raises(InvalidEdge):
            store.add_edge(end.id, message.id)

    def test_unknown_endpoint_and_option(self, store, question):
        with pytest.raises(NotFound):
            store.add_edge('start', 'ghost')
        with pytest.raises(NotFound):
            store.add_edge(question.id, store.add_node('end').id, source_option_id='ghost-option')

    def test_duplicate_key(self, store, question):
        store.add_edge('start', question.id)
        with pytest.raises(DuplicateEdge):
            store.add_edge('start', question.id)
        assert len(store.edges) == 1

    def test_one_edge_per_option(self, store, question):
        option = question.sorted_options()[0]
        store.add_edge(question.id, store.add_node('end').id, source_option_id=option.id)
        with pytest.raises(DuplicateEdge):
            store.add_edge(question.id, store.add_node('end').id, source_option_id=option.id)

    def test_one_fallback_per_node(self, store, question):
        store.add_edge(question.id, store.add_node('end').id)
        with pytest.raises(DuplicateEdge):
            store.add_edge(question.id, store.add_node('end').id)

    def test_keyword_edges(self, store, question):
        first = store.add_node('end')
        edge = store.add_edge(question.id, first.id, condition_kind='keyword_match', condition_value=' Preço ')
        assert (edge.condition_kind, edge.condition_value) == ('keyword_match', 'Preço')

        with pytest.raises(DuplicateEdge):
            store.add_edge(question.id, store.add_node('end').id,
                           condition_kind='keyword_match', condition_value='preço')
        with pytest.raises(ValueError):
            store.add_edge(question.id, store.add_node('end').id,
                           condition_kind='keyword_match', condition_value='   ')

    def test_timer_option_edges_carry_event_value(self, store):
        timer = store.add_node('timer')
        responded, timeout = timer.sorted_options()
        edge = store.add_edge(timer.id, store.add_node('end').id, source_option_id=timeout.id)
        assert (edge.condition_kind, edge.condition_value) == ('timeout', 'timeout')

    def test_edge_write(self, store, repository, question):
        edge = store.add_edge('start', question.id)
        drain(store)
        row = repository.create_edge.call_args[0][0]
        assert row['id'] == edge.id
        assert row['condition_type'] == 'fallback'
        assert row['source_option_id'] is None


class TestAvailabilityPolicy:

    @pytest.fixture
    def check(self, store):
        node = store.add_node('action')
        store.update_node(node.id, action_kind='check_party_availability')
        return node

    def test_first_available_slot(self, store, check):
        targets = [store.add_node('message') for _ in range(4)]

        kinds = [(e.condition_kind, e.condition_value)
                 for e in (store.add_edge(check.id, t.id) for t in targets[:3])]

        assert kinds == [('availability', 'available'), ('availability', 'unavailable'), ('fallback', None)]
        with pytest.raises(DuplicateEdge):
            store.add_edge(check.id, targets[3].id)

    def test_slot_freed_by_delete_is_reused(self, store, check):
        a, b, c = (store.add_node('message') for _ in range(3))
        available = store.add_edge(check.id, a.id)
        store.add_edge(check.id, b.id)
        store.delete_edge(available.id)

        edge = store.add_edge(check.id, c.id)
        assert edge.condition_value == 'available'

    def test_configurable_order(self, repository, flow, start_node):
        store = GraphStore(repository, availability_policy=AvailabilityPolicy(slots=('unavailable',)))
        store.attach(flow, [start_node], [])
        check = store.add_node('action')
        store.update_node(check.id, action_kind='check_visit_availability')

        first = store.add_edge(check.id, store.add_node('message').id)
        second = store.add_edge(check.id, store.add_node('message').id)
        assert (first.condition_kind, first.condition_value) == ('availability', 'unavailable')
        assert second.condition_kind == 'fallback'

    def test_invalid_slots(self):
        with pytest.raises(ValueError):
            AvailabilityPolicy(slots=('maybe',))


class TestOptions:

    def test_add_appends_in_order(self, store):
        question = store.add_node('question')
        labels = ['A', 'B', 'C']
        for label in labels:
            store.add_option(question.id, label, label.lower())
        assert [(o.label, o.sort_order) for o in question.sorted_options()] == [('A', 0), ('B', 1), ('C', 2)]

    def test_update_option(self, store, repository):
        question = store.add_node('question')
        option = store.add_option(question.id, 'Sim', 'sim')
        store.update_option(option.id, label='Sim!')
        drain(store)

        assert option.label == 'Sim!'
        repository.update_option.assert_called_once_with(option.id, {'label': 'Sim!'})

    def test_delete_cascades_keyed_edges(self, store):
        question = store.add_node('question')
        yes = store.add_option(question.id, 'Sim', 'sim')
        no = store.add_option(question.id, 'Não', 'nao')
        store.add_edge(question.id, store.add_node('end').id, source_option_id=yes.id)
        kept = store.add_edge(question.id, store.add_node('end').id, source_option_id=no.id)

        record = store.delete_option(yes.id)

        assert record.kind == 'delete_option'
        assert len(record.edges) == 1
        assert [e.id for e in store.edges] == [kept.id]
        assert [o.id for o in question.options] == [no.id]
        assert len(store.undo_stack) == 1

    def test_reorder(self, store, repository):
        question = store.add_node('question')
        a, b, c = (store.add_option(question.id, x, x) for x in 'abc')

        store.reorder_options(question.id, [c.id, a.id, b.id])
        drain(store)

        assert [o.id for o in question.sorted_options()] == [c.id, a.id, b.id]
        assert [o.sort_order for o in question.sorted_options()] == [0, 1, 2]
        repository.reorder_options.assert_called_once_with(question.id, [c.id, a.id, b.id])

    def test_reorder_idempotent(self, store):
        question = store.add_node('question')
        a, b, c = (store.add_option(question.id, x, x) for x in 'abc')
        order = [b.id, c.id, a.id]

        store.reorder_options(question.id, order)
        first = {o.id: o.sort_order for o in question.options}
        store.reorder_options(question.id, order)
        second = {o.id: o.sort_order for o in question.options}

        assert first == second

    def test_reorder_set_mismatch(self, store):
        question = store.add_node('question')
        a, b = (store.add_option(question.id, x, x) for x in 'ab')

        with pytest.raises(SetMismatch):
            store.reorder_options(question.id, [a.id])
        with pytest.raises(SetMismatch):
            store.reorder_options(question.id, [a.id, a.id])
        with pytest.raises(SetMismatch):
            store.reorder_options(question.id, [a.id, b.id, 'ghost'])
        assert [o.id for o in question.sorted_options()] == [a.id, b.id]


class TestTimerFixedOptions:

    @pytest.fixture
    def timer(self, store):
        return store.add_node('timer')

    def test_cannot_add(self, store, timer):
        with pytest.raises(FixedOptionSet):
            store.add_option(timer.id, 'Talvez', 'maybe')
        assert len(timer.options) == 2

    def test_cannot_delete(self, store, timer):
        with pytest.raises(FixedOptionSet):
            store.delete_option(timer.options[0].id)
        assert len(timer.options) == 2

    def test_cannot_change_value(self, store, timer):
        with pytest.raises(FixedOptionSet):
            store.update_option(timer.options[0].id, value='other')

    def test_label_can_change(self, store, timer):
        option = timer.sorted_options()[0]
        store.update_option(option.id, label='Cliente respondeu')
        assert option.label == 'Cliente respondeu'
        assert option.value == 'responded'

    def test_reorder(self, store, timer):
        ids = [o.id for o in timer.sorted_options()]
        store.reorder_options(timer.id, ids)
        with pytest.raises(FixedOptionSet):
            store.reorder_options(timer.id, ids[::-1])


class TestSession:

    def test_load(self, repository):
        repository.load_flow.return_value = {
            'flow': {'id': 'f', 'name': 'Festa'},
            'nodes': [
                {'id': 'q', 'flow_id': 'f', 'node_type': 'question', 'title': 'Q', 'display_order': 1,
                 'position_x': 400, 'position_y': 100,
                 'options': [{'id': 'o2', 'node_id': 'q', 'label': 'B', 'value': 'b', 'display_order': 1},
                             {'id': 'o1', 'node_id': 'q', 'label': 'A', 'value': 'a', 'display_order': 0}]},
                {'id': 's', 'flow_id': 'f', 'node_type': 'start', 'title': 'Início', 'display_order': 0},
            ],
            'edges': [{'id': 'e', 'flow_id': 'f', 'source_node_id': 's', 'target_node_id': 'q',
                       'condition_type': 'fallback'}],
        }
        store = GraphStore(repository)

        flow = store.load('f')

        assert flow.name == 'Festa'
        assert [n.id for n in store.nodes] == ['s', 'q']
        assert [o.id for o in store.node('q').sorted_options()] == ['o1', 'o2']
        assert store.edge('e').target_node_id == 'q'
        assert not store.can_undo

    def test_load_missing(self, repository):
        repository.load_flow.return_value = None
        with pytest.raises(NotFound):
            GraphStore(repository).load('ghost')

    def test_reload_discards_undo_and_pending_writes(self, store, repository):
        node = store.add_node('message')
        store.delete_node(node.id)
        repository.load_flow.return_value = {'flow': {'id': 'flow-1', 'name': 'x'}, 'nodes': [], 'edges': []}

        store.load('flow-1')

        assert not store.can_undo
        assert store.writes.pending_count == 0

    def test_create_flow(self, repository):
        store = GraphStore(repository)
        flow = store.create_flow('Novo fluxo')
        drain(store)

        assert store.flow is flow
        assert flow.is_active
        assert not flow.is_default
        assert [n.kind for n in store.nodes] == ['start']
        assert called_methods(repository) == ['create_flow', 'create_node']

    def test_create_default_flow(self, repository):
        flow = GraphStore(repository).create_flow('Principal', is_default=True)
        assert flow.is_default
        assert flow.to_row()['is_active'] is True

    def test_discarded_session_writes_stay_silent(self, store, repository):
        def slow_failure(row):
            time.sleep(0.05)
            raise Exception('boom from old session')

        repository.create_node.side_effect = slow_failure
        failures = []
        store.writes.on('failure', lambda write, failure: failures.append(failure))

        async def leave():
            store.add_node('message')
            await asyncio.sleep(0)
            store.discard()
            await asyncio.sleep(0.2)

        asyncio.run(leave())

        assert store.writes.failures == []
        assert failures == []

    def test_stale_layout_save_keeps_new_session_dirty(self, store, repository):
        repository.load_flow.return_value = {'flow': {'id': 'flow-1', 'name': 'x'},
                                             'nodes': [{'id': 's', 'flow_id': 'flow-1', 'node_type': 'start'}],
                                             'edges': []}

        async def reload_and_move():
            store.move_node('start', 5, 5)
            store.save_layout()
            store.load('flow-1')
            store.move_node('s', 10, 10)
            await store.writes.drain()
            await asyncio.sleep(0.05)

        asyncio.run(reload_and_move())

        assert store.is_dirty


class TestRepositoryFailures:

    def test_local_state_is_kept(self, store, repository):
        repository.create_node.side_effect = Exception('network down')
        failures = []
        store.writes.on('failure', lambda write, failure: failures.append(failure))

        node = store.add_node('message')
        drain(store)

        assert store.get_node(node.id) is node
        assert len(failures) == 1
        assert failures[0].operation == 'create_node'
        assert 'network down' in str(failures[0])

"""
Main NiceGUI application for flowgraph.

Two pages:
- '/': list of flows: create, open, rename, switch on/off, choose the
  default, duplicate and delete
- '/flows/{flow_id}': canvas editor wired to a GraphStore and a
  CanvasController, with a node inspector and the preview dialog
"""

from nicegui import ui
import sys
import logging
from typing import Optional

from dotenv import load_dotenv
load_dotenv()

from flowgraph.canvas import CanvasController, bezier_path, edge_anchors
from flowgraph.canvas.geometry import output_anchor, input_anchor
from flowgraph.config import load_settings
from flowgraph.errors import FlowGraphError, NotFound
from flowgraph.flows import FlowCatalog
from flowgraph.model import (
    ACTION_KIND_LABELS,
    EXTRACT_FIELD_LABELS,
    NODE_KIND_LABELS,
    NODE_KINDS,
)
from flowgraph.storage import create_repository
from flowgraph.store import AvailabilityPolicy, GraphStore
from flowgraph.ui import render_preview_dialog
from flowgraph.validation import validate_flow

logger = logging.getLogger(__name__)

settings = load_settings()
repository = create_repository(settings)
catalog = FlowCatalog(repository)

TOOLBAR_HEIGHT = 56

KIND_COLORS = {
    'start': 'bg-green-700',
    'message': 'bg-blue-700',
    'question': 'bg-violet-700',
    'action': 'bg-amber-700',
    'condition': 'bg-cyan-700',
    'end': 'bg-red-700',
    'delay': 'bg-slate-600',
    'timer': 'bg-orange-700',
}


def new_store() -> GraphStore:
    return GraphStore(
        repository,
        undo_limit=settings.undo_limit,
        availability_policy=AvailabilityPolicy(settings.availability_slots),
    )


@ui.page('/')
def flow_list_page():
    ui.dark_mode().enable()

    def guard(action, *args, success: Optional[str] = None):
        """Run a catalog call; failures become a notification."""
        try:
            result = action(*args)
        except (FlowGraphError, ValueError) as e:
            ui.notify(str(e), type='warning')
            return None
        except Exception as e:
            logger.error(f"Flow list action failed: {e}")
            ui.notify(f'Erro: {e}', type='negative')
            return None
        if success:
            ui.notify(success, type='positive')
        render_flows()
        return result

    def open_edit_dialog(flow):
        with ui.dialog() as dialog, ui.card().classes('w-96 bg-slate-900'):
            ui.label('Editar fluxo').classes('text-lg font-bold text-gray-100')
            name = ui.input('Nome', value=flow.name).classes('w-full').props('outlined dense')
            description = ui.textarea('Descrição', value=flow.description or '').classes('w-full')\
                .props('outlined dense')

            def save():
                if guard(catalog.update_details, flow.id, name.value, description.value,
                         success='Fluxo atualizado!') is not None:
                    dialog.close()

            with ui.row().classes('w-full justify-end'):
                ui.button('Cancelar', on_click=dialog.close).props('flat color=grey')
                ui.button('Salvar', on_click=save)
        dialog.open()

    def confirm_delete(flow):
        with ui.dialog() as dialog, ui.card().classes('bg-slate-900'):
            ui.label(f'Excluir o fluxo "{flow.name}"? Esta ação não pode ser desfeita.').classes('text-gray-100')

            def delete():
                dialog.close()
                guard(catalog.delete_flow, flow.id, success='Fluxo excluído!')

            with ui.row().classes('w-full justify-end'):
                ui.button('Cancelar', on_click=dialog.close).props('flat color=grey')
                ui.button('Excluir', color='red', on_click=delete)
        dialog.open()

    with ui.column().classes('w-full max-w-2xl mx-auto p-6 gap-4'):
        ui.label('Fluxos de Conversa').classes('text-2xl font-bold text-white')

        with ui.row().classes('w-full items-center gap-2'):
            name_input = ui.input(placeholder='Nome do novo fluxo').classes('flex-1').props('outlined dense')

            async def do_create():
                name = (name_input.value or '').strip()
                if not name:
                    ui.notify('Informe um nome para o fluxo', type='warning')
                    return
                store = new_store()
                flow = store.create_flow(name, is_default=catalog.is_empty())
                await store.writes.drain()
                if store.writes.failures:
                    ui.notify(f'Falha ao criar fluxo: {store.writes.failures[-1]}', type='negative')
                    return
                ui.navigate.to(f'/flows/{flow.id}')

            ui.button('Criar', icon='add', on_click=do_create)

        list_container = ui.column().classes('w-full gap-2')

    def render_flows():
        list_container.clear()
        with list_container:
            try:
                flows = catalog.list_flows()
            except Exception as e:
                logger.error(f"Failed to list flows: {e}")
                ui.label(f'Erro ao carregar fluxos: {e}').classes('text-red-400')
                return

            if not flows:
                ui.label('Nenhum fluxo ainda.').classes('text-gray-500')
            for flow in flows:
                with ui.card().classes('w-full bg-slate-800'):
                    with ui.row().classes('w-full items-center no-wrap'):
                        with ui.column().classes('flex-1 gap-0'):
                            with ui.row().classes('items-center gap-2'):
                                ui.label(flow.name or flow.id).classes('text-lg text-gray-100')
                                if flow.is_default:
                                    ui.badge('Padrão', color='primary')
                                if not flow.is_active:
                                    ui.badge('Inativo', color='grey')
                            if flow.description:
                                ui.label(flow.description).classes('text-sm text-gray-400')
                        ui.switch(value=flow.is_active,
                                  on_change=lambda e, fid=flow.id: guard(catalog.set_active, fid, e.value))\
                            .tooltip('Ativo')
                        ui.button(icon='open_in_new', on_click=lambda _e, fid=flow.id: ui.navigate.to(f'/flows/{fid}'))\
                            .props('flat round dense').tooltip('Abrir')
                        with ui.button(icon='more_vert').props('flat round dense'):
                            with ui.menu():
                                ui.menu_item('Editar', on_click=lambda _e, f=flow: open_edit_dialog(f))
                                ui.menu_item('Duplicar', on_click=lambda _e, fid=flow.id: guard(
                                    catalog.duplicate_flow, fid, success='Fluxo duplicado com sucesso!'))
                                if not flow.is_default:
                                    ui.menu_item('Definir como padrão', on_click=lambda _e, fid=flow.id: guard(
                                        catalog.set_default, fid, success='Fluxo definido como padrão!'))
                                ui.menu_item('Excluir', on_click=lambda _e, f=flow: confirm_delete(f))

    render_flows()


@ui.page('/flows/{flow_id}')
def editor_page(flow_id: str):
    ui.dark_mode().enable()
    ui.query('body').style('margin: 0; padding: 0; overflow: hidden;')

    store = new_store()
    try:
        store.load(flow_id)
    except NotFound:
        ui.label('Fluxo não encontrado').classes('text-xl text-red-400 p-6')
        ui.link('Voltar', '/')
        return

    # Leaving the editor abandons the session and its unacknowledged writes
    ui.context.client.on_disconnect(store.discard)

    canvas = CanvasController(store)
    root = ui.element('div')

    def on_write_failure(write, failure):
        with root:
            ui.notify(f'Falha ao salvar ({write.description}): {failure}', type='negative')

    def on_write_success(_write):
        # Saving the layout clears the dirty badge
        render_toolbar_status()

    store.writes.on('failure', on_write_failure)
    store.writes.on('success', on_write_success)

    def refresh_all():
        render_toolbar_status()
        render_graph()
        render_inspector()

    def guard(action, *args, **kwargs):
        """Run a store action; structural errors become a notification."""
        try:
            return action(*args, **kwargs)
        except (FlowGraphError, ValueError) as e:
            ui.notify(str(e), type='warning')
        finally:
            refresh_all()

    def add_node(kind: str):
        node = guard(store.add_node, kind, near_node_id=canvas.selected_node_id)
        if node is not None:
            canvas.selected_node_id = node.id
            refresh_all()

    def do_undo():
        result = guard(store.undo)
        if result is not None:
            ui.notify(result.message, type='info' if result.undone else 'warning')

    def do_validate():
        issues = validate_flow(store.snapshot())
        if not issues:
            ui.notify('Nenhum problema encontrado', type='positive')
            return
        for issue in issues[:5]:
            ui.notify(issue.message, type='warning')

    preview = render_preview_dialog(store.snapshot, typing_delay_ms=settings.typing_delay_ms)

    # --- Toolbar ---

    with ui.row().classes('fixed top-0 inset-x-0 z-20 items-center gap-2 px-4 bg-slate-900 border-b border-slate-700')\
            .style(f'height: {TOOLBAR_HEIGHT}px'):
        ui.button(icon='arrow_back', on_click=lambda: ui.navigate.to('/')).props('flat round dense')
        ui.label(store.flow.name).classes('text-lg font-bold text-gray-100 mr-4')

        with ui.button('Adicionar', icon='add').props('dense'):
            with ui.menu():
                for kind in NODE_KINDS:
                    if kind == 'start':
                        continue
                    ui.menu_item(NODE_KIND_LABELS[kind], on_click=lambda _e, k=kind: add_node(k))

        ui.button(icon='undo', on_click=do_undo).props('flat dense').tooltip('Desfazer')
        ui.button('Salvar layout', icon='save', on_click=lambda: guard(store.save_layout)).props('flat dense')
        ui.button('Testar', icon='play_arrow', on_click=preview.open).props('flat dense color=green')
        ui.button(icon='rule', on_click=do_validate).props('flat dense').tooltip('Validar fluxo')

        ui.space()

        ui.button(icon='zoom_out', on_click=lambda: (canvas.zoom_out(), refresh_all())).props('flat round dense')

        status_container = ui.row().classes('items-center gap-1 no-wrap')

        def render_toolbar_status():
            status_container.clear()
            with status_container:
                ui.label(f'{round(canvas.view.zoom * 100)}%').classes('w-12 text-center text-sm')
                if store.is_dirty:
                    ui.badge('não salvo', color='orange')

        render_toolbar_status()
        ui.button(icon='zoom_in', on_click=lambda: (canvas.zoom_in(), refresh_all())).props('flat round dense')
        ui.button(icon='center_focus_strong', on_click=lambda: (canvas.reset_view(), refresh_all()))\
            .props('flat round dense')

    # --- Canvas ---

    def device_point(args):
        return args['clientX'], args['clientY'] - TOOLBAR_HEIGHT

    def on_pointer_down(e):
        x, y = device_point(e.args)
        guard(canvas.pointer_down, x, y)

    def on_pointer_move(e):
        if canvas.mode == 'idle':
            return
        x, y = device_point(e.args)
        canvas.pointer_move(x, y)
        render_graph()

    def on_pointer_up(_e):
        canvas.pointer_up()
        refresh_all()

    def on_wheel(e):
        canvas.wheel(e.args['deltaY'], shift=e.args.get('shiftKey', False), ctrl=e.args.get('ctrlKey', False))
        refresh_all()

    def on_touch_start(e):
        points = [(x, y - TOOLBAR_HEIGHT) for x, y in e.args]
        if len(points) >= 2:
            canvas.touch_start(points)

    def on_touch_move(e):
        points = [(x, y - TOOLBAR_HEIGHT) for x, y in e.args]
        if len(points) >= 2:
            canvas.touch_move(points)
            refresh_all()

    touches_js = '(e) => emit([...e.touches].map(t => [t.clientX, t.clientY]))'

    surface = ui.element('div').classes('fixed inset-x-0 bottom-0 overflow-hidden bg-slate-950 touch-none')\
        .style(f'top: {TOOLBAR_HEIGHT}px')
    surface.on('pointerdown', on_pointer_down, ['clientX', 'clientY'])
    surface.on('pointermove', on_pointer_move, ['clientX', 'clientY'], throttle=0.03)
    surface.on('pointerup', on_pointer_up)
    surface.on('pointerleave', on_pointer_up)
    surface.on('wheel.prevent', on_wheel, ['deltaY', 'shiftKey', 'ctrlKey'])
    surface.on('touchstart', on_touch_start, js_handler=touches_js)
    surface.on('touchmove', on_touch_move, js_handler=touches_js)
    surface.on('touchend', lambda _e: canvas.touch_end())

    with surface:
        graph_container = ui.element('div')

    def render_graph():
        graph_container.clear()
        with graph_container:
            view = canvas.view
            width = canvas.node_width
            with ui.element('div').classes('absolute left-0 top-0').style(
                    f'transform: translate({view.offset_x}px, {view.offset_y}px) scale({view.zoom}); '
                    f'transform-origin: 0 0;'):
                paths = []
                for edge in store.edges:
                    source = store.get_node(edge.source_node_id)
                    target = store.get_node(edge.target_node_id)
                    if source is None or target is None:
                        continue
                    start, end = edge_anchors(edge, source, target, width)
                    paths.append(f'<path d="{bezier_path(start, end)}" stroke="#3b82f6" stroke-width="2" fill="none"/>')
                preview_line = canvas.connection_preview()
                if preview_line:
                    (x1, y1), (x2, y2) = preview_line
                    paths.append(f'<line x1="{x1}" y1="{y1}" x2="{x2}" y2="{y2}" stroke="#22c55e" '
                                 f'stroke-width="2" stroke-dasharray="8,4"/>')
                ui.html(f'<svg width="10000" height="10000" style="position:absolute;left:0;top:0;'
                        f'overflow:visible;pointer-events:none">{"".join(paths)}</svg>', sanitize=False)

                for node in store.nodes:
                    selected = node.id == canvas.selected_node_id
                    with ui.element('div').classes(
                            'absolute rounded-lg shadow-lg bg-slate-800 text-gray-100 select-none '
                            + ('ring-2 ring-primary' if selected else 'border border-slate-600')
                    ).style(f'left: {node.position.x}px; top: {node.position.y}px; width: {width}px'):
                        with ui.row().classes(f'w-full px-3 py-2 rounded-t-lg cursor-move {KIND_COLORS[node.kind]}'):
                            ui.label(node.title).classes('font-bold truncate')
                        with ui.column().classes('p-3 gap-2 w-full'):
                            if node.message_template:
                                ui.label(node.message_template).classes('text-sm bg-slate-700/50 rounded p-2 line-clamp-3')
                            if node.action_kind:
                                ui.badge(ACTION_KIND_LABELS.get(node.action_kind, node.action_kind), color='amber')
                            if node.extract_fields:
                                ui.badge(', '.join(EXTRACT_FIELD_LABELS.get(f, f) for f in node.extract_fields),
                                         color='teal')
                            if node.options:
                                ui.label('Opções:').classes('text-xs text-gray-400')
                                for option in node.sorted_options():
                                    ui.label(option.label).classes('text-sm px-2 py-1 rounded bg-slate-700 w-full')

                    if node.kind != 'start':
                        ix, iy = input_anchor(node)
                        ui.element('div').classes('absolute w-3 h-3 rounded-full bg-slate-300')\
                            .style(f'left: {ix - 6}px; top: {iy - 6}px')
                    if node.kind != 'end':
                        anchors = [output_anchor(node, width)]
                        anchors += [output_anchor(node, width, o.id) for o in node.sorted_options()]
                        for hx, hy in anchors:
                            ui.element('div').classes('absolute w-3 h-3 rounded-full bg-blue-400 cursor-crosshair')\
                                .style(f'left: {hx - 6}px; top: {hy - 6}px')

    render_graph()

    # --- Inspector ---

    with ui.card().classes('fixed right-4 z-20 w-96 max-h-[85vh] overflow-y-auto bg-slate-900/95 border border-slate-700')\
            .style(f'top: {TOOLBAR_HEIGHT + 16}px'):
        inspector_container = ui.column().classes('w-full gap-2')

    def render_inspector():
        inspector_container.clear()
        node = store.get_node(canvas.selected_node_id) if canvas.selected_node_id else None
        if node is None:
            with inspector_container:
                ui.label('Selecione um nó para editar').classes('text-gray-500 text-sm')
            return

        with inspector_container:
            ui.label(NODE_KIND_LABELS[node.kind]).classes('text-xs text-gray-400 uppercase')
            ui.input('Título', value=node.title).classes('w-full').props('outlined dense')\
                .on('blur', lambda e, nid=node.id: guard(store.update_node, nid, title=e.sender.value))
            if node.message_template is not None or node.kind in ('message', 'question', 'timer', 'start'):
                ui.textarea('Mensagem', value=node.message_template or '').classes('w-full').props('outlined dense')\
                    .on('blur', lambda e, nid=node.id: guard(store.update_node, nid, message_template=e.sender.value))
            if node.kind == 'action':
                ui.select(ACTION_KIND_LABELS, value=node.action_kind, label='Ação',
                          on_change=lambda e, nid=node.id: guard(store.update_node, nid, action_kind=e.value))\
                    .classes('w-full').props('outlined dense')
            if node.kind in ('question', 'message', 'action'):
                ui.select(EXTRACT_FIELD_LABELS, value=list(node.extract_fields), label='Extrair', multiple=True,
                          on_change=lambda e, nid=node.id: guard(store.update_node, nid, extract_fields=e.value or []))\
                    .classes('w-full').props('outlined dense use-chips')
            if node.kind == 'question':
                ui.switch('Permitir interpretação livre', value=node.allow_freeform_interpretation,
                          on_change=lambda e, nid=node.id: guard(store.update_node, nid,
                                                                 allow_freeform_interpretation=e.value))

            if node.kind in ('question', 'timer'):
                ui.separator()
                ui.label('Opções').classes('text-sm font-bold')
                ordered = node.sorted_options()
                for index, option in enumerate(ordered):
                    with ui.row().classes('w-full items-center gap-1 no-wrap'):
                        ui.input(value=option.label).classes('flex-1').props('dense')\
                            .on('blur', lambda e, oid=option.id: guard(store.update_option, oid, label=e.sender.value))
                        ui.button(icon='call_made', on_click=lambda _e, nid=node.id, oid=option.id: (
                            canvas.start_connection(nid, oid), refresh_all())).props('flat round dense size=sm')\
                            .tooltip('Conectar')
                        if node.kind != 'timer':
                            if index > 0:
                                ids = [o.id for o in ordered]
                                ids[index - 1], ids[index] = ids[index], ids[index - 1]
                                ui.button(icon='arrow_upward', on_click=lambda _e, nid=node.id, new=ids: guard(
                                    store.reorder_options, nid, new)).props('flat round dense size=sm')
                            ui.button(icon='delete', on_click=lambda _e, oid=option.id: guard(
                                store.delete_option, oid)).props('flat round dense size=sm color=red')
                if node.kind != 'timer':
                    def add_option(_e=None, nid=node.id, count=len(ordered)):
                        label = f'Opção {count + 1}'
                        guard(store.add_option, nid, label, label.lower().replace(' ', '_'))
                    ui.button('Adicionar opção', icon='add', on_click=add_option).props('flat dense')

            outgoing = store.edges_from(node.id)
            if outgoing:
                ui.separator()
                ui.label('Conexões').classes('text-sm font-bold')
                for edge in outgoing:
                    target = store.get_node(edge.target_node_id)
                    with ui.row().classes('w-full items-center justify-between no-wrap'):
                        condition = edge.condition_kind or 'fallback'
                        if edge.condition_value:
                            condition += f': {edge.condition_value}'
                        ui.label(f'→ {target.title if target else "?"} ({condition})').classes('text-sm truncate')
                        ui.button(icon='link_off', on_click=lambda _e, eid=edge.id: guard(store.delete_edge, eid))\
                            .props('flat round dense size=sm color=red')

            ui.separator()
            with ui.row().classes('w-full justify-between'):
                if node.kind != 'end':
                    ui.button('Conectar', icon='call_made', on_click=lambda _e, nid=node.id: (
                        canvas.start_connection(nid), refresh_all())).props('flat dense')
                if node.kind != 'start':
                    ui.button(icon='content_copy', on_click=lambda _e, nid=node.id: guard(store.duplicate_node, nid))\
                        .props('flat dense').tooltip('Duplicar')

                    def delete_selected(_e=None, nid=node.id):
                        guard(store.delete_node, nid)
                        canvas.selected_node_id = None
                        refresh_all()

                    ui.button(icon='delete', color='red', on_click=delete_selected).props('flat dense')\
                        .tooltip('Excluir')

    render_inspector()


if __name__ in {"__main__", "__mp_main__"}:
    logging.basicConfig(level=logging.INFO)
    ui.run(
        title='Flow Builder',
        port=8081,
        reload=not getattr(sys, 'frozen', False),
    )

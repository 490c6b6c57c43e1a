"""
Flow Preview Dialog

A chat-style dialog that runs the Simulator over a snapshot of the flow:
- Bot turns appear one at a time after a cancelable "typing" delay
- Quick reply buttons for question and timer nodes
- Buttons to inject availability results on availability checks
- Restart button, and a fresh run every time the dialog opens
"""

from nicegui import ui
from typing import Callable, Dict, Optional

from flowgraph.errors import FlowGraphError
from flowgraph.model import AVAILABILITY_VALUES, FlowSnapshot
from flowgraph.simulator import BOT, USER, Classifier, Simulator

AVAILABILITY_LABELS = {'available': 'Disponível', 'unavailable': 'Indisponível'}


def render_preview_dialog(
    get_snapshot: Callable[[], FlowSnapshot],
    typing_delay_ms: int = 800,
    variables: Optional[Dict[str, str]] = None,
    classifier: Optional[Classifier] = None,
) -> 'ui.dialog':
    """
    Create and return the preview dialog.

    Args:
        get_snapshot: Called on every (re)start to freeze the current graph
        typing_delay_ms: Pause before each bot turn is revealed
        variables: Values for {key} placeholders in message templates
        classifier: Optional free-text -> option id mapper

    Returns:
        The dialog instance (call dialog.open() to show)
    """
    state = {
        'sim': None,
        'shown': 0,
        'timer': None,
        'messages_container': None,
    }

    def cancel_typing():
        if state['timer'] is not None:
            state['timer'].cancel()
            state['timer'] = None

    def is_typing() -> bool:
        return state['timer'] is not None

    def pump():
        """Reveal user turns at once and schedule the next bot turn."""
        sim = state['sim']
        transcript = sim.transcript if sim else []
        while state['shown'] < len(transcript) and transcript[state['shown']].sender == USER:
            state['shown'] += 1
        if state['shown'] < len(transcript) and not is_typing():
            # Timer lives on the dialog so clearing the messages cannot delete it
            with dialog:
                state['timer'] = ui.timer(typing_delay_ms / 1000, reveal_next, once=True)
        render_messages()

    def reveal_next():
        state['timer'] = None
        state['shown'] += 1
        pump()

    def restart():
        cancel_typing()
        state['sim'] = Simulator(get_snapshot(), variables=variables, classifier=classifier)
        state['sim'].start()
        state['shown'] = 0
        pump()

    def stop():
        cancel_typing()
        state['sim'] = None

    def run(action: Callable[[], object]):
        if state['sim'] is None or is_typing():
            return
        try:
            action()
        except FlowGraphError as e:
            ui.notify(str(e), type='negative')
        pump()

    def send_text():
        text = text_input.value or ''
        text_input.value = ''
        run(lambda: state['sim'].send_text(text))

    dialog = ui.dialog()

    with dialog:
        with ui.card().classes('w-full max-w-md h-[600px] flex flex-col bg-slate-900 border border-slate-700'):
            with ui.row().classes('w-full items-center justify-between'):
                ui.label('Testar Fluxo').classes('text-lg font-bold text-gray-100')
                with ui.row().classes('gap-1'):
                    ui.button('Reiniciar', icon='restart_alt', on_click=restart).props('flat dense color=grey')
                    ui.button(icon='close', on_click=dialog.close).props('flat round dense color=grey')

            ui.separator()

            def render_messages():
                container = state['messages_container']
                if container is None:
                    return
                container.clear()
                sim = state['sim']
                if sim is None:
                    return
                with container:
                    turns = sim.transcript[:state['shown']]
                    for index, turn in enumerate(turns):
                        is_bot = turn.sender == BOT
                        with ui.row().classes('w-full' + ('' if turn.sender != USER else ' justify-end')):
                            if turn.sender in (BOT, USER):
                                ui.chat_message(turn.text, sent=turn.sender == USER,
                                                name='Bot' if is_bot else 'Você')
                            else:
                                ui.label(turn.text).classes('text-xs italic text-gray-500')
                        is_last = index == len(turns) - 1
                        if turn.options and is_last and state['shown'] == len(sim.transcript):
                            with ui.row().classes('gap-1 flex-wrap'):
                                for option in turn.options:
                                    ui.button(option.label,
                                              on_click=lambda _e, oid=option.id: run(lambda: state['sim'].choose_option(oid))
                                              ).props('outline dense size=sm')

                    node = sim.current_node
                    if node is not None and node.is_availability_check and not is_typing():
                        with ui.row().classes('gap-1'):
                            for value in AVAILABILITY_VALUES:
                                ui.button(AVAILABILITY_LABELS[value],
                                          on_click=lambda _e, v=value: run(lambda: state['sim'].send_availability(v))
                                          ).props('outline dense size=sm color=amber')

                    if is_typing():
                        ui.spinner('dots', size='lg').classes('text-gray-400')

            with ui.scroll_area().classes('flex-1 w-full'):
                state['messages_container'] = ui.column().classes('w-full gap-2')

            with ui.row().classes('w-full items-center gap-2'):
                text_input = ui.input(placeholder='Digite uma mensagem...').classes('flex-1').props('outlined dense')
                text_input.on('keydown.enter', send_text)
                ui.button(icon='send', on_click=send_text).props('flat round')

    dialog.on_value_change(lambda e: restart() if e.value else stop())
    return dialog

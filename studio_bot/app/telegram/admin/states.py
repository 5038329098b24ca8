from aiogram.fsm.state import State, StatesGroup


class AdminStates(StatesGroup):
    # /update_schedule: waiting for the spreadsheet document
    waiting_schedule_file = State()

    # /broadcast without text: waiting for the message to send
    waiting_broadcast_text = State()

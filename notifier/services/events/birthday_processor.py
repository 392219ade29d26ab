from notifier.db.models import EventKind, User

from .base import BaseEventProcessor


class BirthdayProcessor(BaseEventProcessor):
    event_kind = EventKind.BIRTHDAY
    date_field = "birthday"

    def render_message(self, user: User) -> str:
        return f"Hey, {user.full_name} it's your birthday"

from notifier.db.models import EventKind, User

from .base import BaseEventProcessor


class AnniversaryProcessor(BaseEventProcessor):
    event_kind = EventKind.ANNIVERSARY
    date_field = "anniversary_date"

    def render_message(self, user: User) -> str:
        return f"Happy Anniversary, {user.full_name}!"

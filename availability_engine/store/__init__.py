from availability_engine.store.base import CalendarStore
from availability_engine.store.memory import InMemoryCalendarStore

__all__ = ["CalendarStore", "InMemoryCalendarStore"]

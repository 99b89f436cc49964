from .app import ScheduleOutcome, TimelyApp
from .store import TimelyStore

__all__ = ["TimelyApp", "TimelyStore", "ScheduleOutcome"]

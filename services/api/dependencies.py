"""
FastAPI dependencies.
"""
from fastapi import Request

from services.timely.app import TimelyApp


def get_timely_app(request: Request) -> TimelyApp:
    """The process-wide ``TimelyApp`` created by the lifespan handler."""
    timely = getattr(request.app.state, "timely", None)
    if timely is None:
        raise RuntimeError("Timely services not started")
    return timely

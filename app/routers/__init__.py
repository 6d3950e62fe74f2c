"""Aggregate FastAPI routers for inclusion in the application."""
from . import messages, auth, audit, health

all_routers = [
    messages.router,
    auth.router,
    audit.router,
    health.router,
]

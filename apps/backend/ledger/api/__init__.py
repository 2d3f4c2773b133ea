"""Router aggregation.

Each feature module owns one ``APIRouter``; ``register_routers`` mounts them
all under ``/api``.
"""

from fastapi import FastAPI

from . import accounts, budgets, candidates, categories, recurring, reports, settings, transactions


def register_routers(app: FastAPI) -> None:
    """Attach all API routes to the FastAPI application."""

    for module in (accounts, categories, transactions, reports, recurring, candidates, budgets, settings):
        app.include_router(module.router, prefix="/api")

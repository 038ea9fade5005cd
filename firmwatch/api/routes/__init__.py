from fastapi import FastAPI

from . import alerts, auth, entities, health, scan


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(alerts.router)
    app.include_router(scan.router)
    app.include_router(entities.router)

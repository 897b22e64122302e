from fastapi import FastAPI

from bakery_ops.db import SessionLocal
from bakery_ops.logging_config import configure_logging
from bakery_ops.routers import notifications, warehouse
from bakery_ops.security.sessions import install_auth_session_middleware


def create_app(session_factory=SessionLocal) -> FastAPI:
    app = FastAPI(title='Bakery Operations')
    install_auth_session_middleware(app, session_factory)

    app.include_router(warehouse.router)
    app.include_router(notifications.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


configure_logging()
app = create_app()

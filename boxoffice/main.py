from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from boxoffice.api.routes import audit, orders, ping, pos, stock
from boxoffice.audit.service import AuditService
from boxoffice.core.config import Settings, get_settings
from boxoffice.core.logging import configure_logging, init_tracer, shutdown_tracer
from boxoffice.db import create_engine, create_session_factory, ensure_schema
from boxoffice.errors import register_exception_handlers
from boxoffice.issuance.artifacts import ArtifactStore, LocalArtifactStore
from boxoffice.issuance.issuer import TicketIssuer
from boxoffice.notifications import NotificationDispatcher, build_dispatcher
from boxoffice.orders.service import OrderService
from boxoffice.stock.service import StockService
from boxoffice.unit_of_work import unit_of_work_factory


def _build_lifespan(
    settings: Settings,
    notifier: NotificationDispatcher | None,
    artifact_store: ArtifactStore | None,
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
        logger = configure_logging(settings)
        tracer_provider = init_tracer(settings)

        app.state.logger = logger
        app.state.tracer_provider = tracer_provider
        app.state.stock_service = None
        app.state.order_service = None
        app.state.audit_service = None
        db_engine = None
        try:
            db_engine = create_engine(settings.database_url, echo=settings.database_echo)
            if settings.auto_create_schema:
                await ensure_schema(db_engine)
            uow_factory = unit_of_work_factory(create_session_factory(db_engine))
            store = artifact_store or LocalArtifactStore(settings.artifact_directory, settings.artifact_base_url)
            issuer = TicketIssuer(uow_factory, store)
            app.state.stock_service = StockService(uow_factory)
            app.state.order_service = OrderService(uow_factory, issuer, notifier or build_dispatcher(settings))
            app.state.audit_service = AuditService(uow_factory)
        except Exception:  # pragma: no cover - service initialisation best effort
            logger.exception("Service initialisation failed; API will answer 503")
            if db_engine is not None:
                await db_engine.dispose()
                db_engine = None
        try:
            yield
        finally:
            if db_engine is not None:
                await db_engine.dispose()
            shutdown_tracer(tracer_provider)

    return lifespan


def create_app(
    settings: Settings | None = None,
    *,
    notifier: NotificationDispatcher | None = None,
    artifact_store: ArtifactStore | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, lifespan=_build_lifespan(settings, notifier, artifact_store))
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(stock.router)
    app.include_router(pos.router)
    app.include_router(orders.router)
    app.include_router(audit.router)
    if artifact_store is None:
        app.mount(
            "/artifacts",
            StaticFiles(directory=settings.artifact_directory, check_dir=False),
            name="artifacts",
        )
    return app


app = create_app()

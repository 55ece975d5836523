"""FastAPI application for Herald.

Wires the notification backend, context registry, renderer, channel
adapters and engine, and runs the optional queue workers and poller for
the lifetime of the app.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from herald.channels.adapters.email import SmtpEmailAdapter
from herald.channels.adapters.in_app import InAppAdapter, InAppInbox
from herald.channels.adapters.push import HttpPushAdapter
from herald.channels.adapters.sms import HttpSmsAdapter
from herald.channels.registry import AdapterRegistry
from herald.contexts import default_context_registry
from herald.core.config import Settings
from herald.db.engine import DatabaseManager
from herald.notifications.attachments import AttachmentResolver
from herald.notifications.context import ContextRegistry
from herald.notifications.engine import NotificationEngine
from herald.notifications.queue import AsyncioQueueService
from herald.notifications.recipients import UserDirectory
from herald.notifications.renderer import JinjaTemplateRenderer, TemplateRenderer
from herald.notifications.scheduler import PendingNotificationPoller
from herald.notifications.store import NotificationStore
from herald.repositories.postgres.notifications import PostgresNotificationRepository
from herald.repositories.protocols import NotificationBackend
from herald.web.notification_router import router as notification_router

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str = "0.1.0"
    backend: str
    adapters: list[str]


def build_adapter_registry(settings: Settings, inbox: InAppInbox | None = None) -> AdapterRegistry:
    """Register the transports that are configured, plus the in-app inbox."""
    registry = AdapterRegistry()
    if settings.smtp.host:
        registry.register(SmtpEmailAdapter(settings.smtp))
    if settings.sms.gateway_url:
        registry.register(HttpSmsAdapter(settings.sms))
    if settings.push.gateway_url:
        registry.register(HttpPushAdapter(settings.push))
    registry.register(InAppAdapter(inbox=inbox))
    return registry


def build_backend(settings: Settings) -> tuple[NotificationBackend, DatabaseManager | None]:
    stale = timedelta(seconds=settings.notification.stale_claim_after_seconds)
    if not settings.db.database_url:
        return NotificationStore(stale_claim_after=stale), None
    db = DatabaseManager.from_config(settings.db)
    return PostgresNotificationRepository(db, stale_claim_after=stale), db


def create_app(
    settings: Settings | None = None,
    backend: NotificationBackend | None = None,
    adapters: AdapterRegistry | None = None,
    contexts: ContextRegistry | None = None,
    renderer: TemplateRenderer | None = None,
    attachments: AttachmentResolver | None = None,
    directory: UserDirectory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances
    with in-memory backends and mock adapters.

    Args:
        settings: Application settings. Defaults to Settings().
        backend: Notification backend. Defaults to the SQL repository when
            a database URL is configured, else the in-memory store.
        adapters: Channel adapters. Defaults to the configured transports.
        contexts: Context registry. Defaults to the built-in generators.
        renderer: Template renderer. Defaults to Jinja2 over ``templates_dir``.
        attachments: Optional attachment resolver.
        directory: Optional contact lookup for registered users.

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db: DatabaseManager | None = None
    if backend is None:
        backend, db = build_backend(settings)

    inbox = InAppInbox()
    if adapters is None:
        adapters = build_adapter_registry(settings, inbox)
    else:
        in_app = adapters.get(InAppAdapter.default_key)
        if isinstance(in_app, InAppAdapter):
            inbox = in_app.inbox

    if contexts is None:
        contexts = default_context_registry(settings.notification.contact_email)
    contexts.freeze()

    if renderer is None:
        renderer = JinjaTemplateRenderer(settings.notification.templates_dir)

    engine = NotificationEngine(
        backend=backend,
        adapters=adapters,
        contexts=contexts,
        renderer=renderer,
        attachments=attachments,
        directory=directory,
        send_on_create=settings.notification.send_on_create,
        dispatch_timeout=settings.notification.dispatch_timeout_seconds,
    )

    queue: AsyncioQueueService | None = None
    if settings.queue.enabled:
        queue = AsyncioQueueService(workers=settings.queue.workers)
        engine.register_queue_service(queue)

    poller: PendingNotificationPoller | None = None
    if settings.scheduler.enabled:
        poller = PendingNotificationPoller(
            engine,
            interval=settings.scheduler.poll_interval_seconds,
            max_concurrency=settings.scheduler.max_concurrency,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if db is not None and db.is_sqlite:
            await db.create_all()
        if queue is not None:
            queue.start(engine.delayed_send)
        if poller is not None:
            poller.start()
        logger.info("Herald started (backend=%s, adapters=%s)", type(backend).__name__, adapters.adapter_keys)
        yield
        if poller is not None:
            await poller.close()
        if queue is not None:
            await queue.stop()
        if db is not None:
            await db.close()

    app = FastAPI(
        title="Herald",
        description="Notification lifecycle and delivery service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.db_manager = db
    app.state.notification_backend = backend
    app.state.adapter_registry = adapters
    app.state.context_registry = contexts
    app.state.notification_engine = engine
    app.state.queue_service = queue
    app.state.poller = poller
    app.state.inbox = inbox

    app.include_router(notification_router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            service="herald",
            backend=type(backend).__name__,
            adapters=adapters.adapter_keys,
        )

    return app

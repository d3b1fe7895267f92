"""
Application factory for the HBG services.

Run with:
    uvicorn hbg_web.app:create_app --factory --reload
"""

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from hbg_authentication import TokenAuthenticationBackend, TokenAuthenticationMiddleware
from hbg_authentication.routes import router as auth_router
from hbg_constructor import ConstructorHub
from hbg_constructor import router as constructor_router
from hbg_constructor.generator import ImageGenerator
from hbg_contacts import ChatHub
from hbg_contacts import router as contacts_router
from hbg_core.config import HbgSettings, hbg_settings
from hbg_core.exceptions import HbgError
from hbg_core.logging import (
    new_correlation_id,
    reset_correlation_id,
    set_correlation_id,
    setup_logging,
)
from hbg_db import db as db_module
from hbg_emailer import DistributionWorker, EmailerHub, seed_senders
from hbg_emailer import routers as emailer_routers
from hbg_emailer.smtp import MailerFactory, SmtpMailer
from hbg_hub import ConnectionManager, hub_endpoint
from hbg_projects import ProjectHub, seed_projects
from hbg_projects import router as projects_router
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SECURITY_HEADERS = {
    "X-Frame-Options": "deny",
    "X-Content-Type-Options": "nosniff",
    "X-Xss-Protection": "1",
}


def _init_database(settings: HbgSettings) -> None:
    db_module.init_db(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


def _lifespan(settings: HbgSettings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await db_module.create_all()
        if settings.ENABLE_SEEDING:
            async with db_module.get_session_factory()() as db:
                await seed_projects(db)
                await seed_senders(db, settings)
        logger.info("HBG services started (%s)", settings.ENVIRONMENT)
        try:
            yield
        finally:
            await app.state.distribution_worker.shutdown(wait=False)
            await db_module.close_db()
            logger.info("HBG services stopped")

    return lifespan


def create_app(
    settings: HbgSettings | None = None,
    *,
    mailer_factory: MailerFactory | None = None,
    image_generator: ImageGenerator | None = None,
) -> FastAPI:
    """
    Build the API: REST routers, the four hubs and the distribution worker.

    The database engine is created here so the authentication middleware
    has a session factory; tables are created on startup.

    Examples:
        >>> app = create_app(HbgSettings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))
    """
    settings = settings or hbg_settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    _init_database(settings)
    session_factory = db_module.get_session_factory()

    app = FastAPI(
        title="HBG services",
        description="Projects, emailer, jewelry constructor and chat APIs with live hubs",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=_lifespan(settings),
    )
    app.state.settings = settings
    app.state.auth_backend = TokenAuthenticationBackend(settings.ACCESS_TOKEN_EXPIRE_SECONDS)

    # one manager per hub, user groups must not leak pushes across hubs
    app.state.project_hub = ProjectHub(session_factory, ConnectionManager())
    app.state.emailer_hub = EmailerHub(session_factory, ConnectionManager())
    app.state.constructor_hub = ConstructorHub(
        session_factory, ConnectionManager(), image_generator
    )
    app.state.contacts_hub = ChatHub(
        session_factory, ConnectionManager(), max_take=settings.MAX_TAKE
    )
    app.state.distribution_worker = DistributionWorker(
        session_factory,
        app.state.emailer_hub.manager,
        mailer_factory or partial(
            SmtpMailer.for_sender, port=settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT
        ),
    )
    app.state.image_generator = image_generator

    app.include_router(auth_router)
    app.include_router(projects_router)
    for router in emailer_routers:
        app.include_router(router)
    app.include_router(constructor_router)
    app.include_router(contacts_router)

    app.add_api_websocket_route("/hub/proj", hub_endpoint(app.state.project_hub))
    app.add_api_websocket_route("/hub/emailer", hub_endpoint(app.state.emailer_hub))
    app.add_api_websocket_route(
        "/hub/constructor", hub_endpoint(app.state.constructor_hub)
    )
    app.add_api_websocket_route("/hub/contacts", hub_endpoint(app.state.contacts_hub))

    @app.exception_handler(HbgError)
    async def handle_hbg_error(_request: Request, exc: HbgError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    app.add_middleware(
        TokenAuthenticationMiddleware,  # ty:ignore[invalid-argument-type]
        session_maker=session_factory,
        backend=app.state.auth_backend,
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.middleware("http")
    async def correlation(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_correlation_id()
        token = set_correlation_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    if settings.ENABLE_CORS:
        app.add_middleware(
            CORSMiddleware,  # ty:ignore[invalid-argument-type]
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    return app

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from config.database import AsyncSessionLocal, engine_async, init_models
from errors import TrackingError
import models  # noqa: F401  registers every table on Base.metadata
from routers import affiliates, tracking
from services.affiliate_service import AffiliateService
from services.balance_service import BalanceLedger
from services.email_service import SmtpChannel, RelayChannel
from services.keepalive import ping_other_servers
from services.notification_service import NotificationDispatcher, ConversionNotifier
from services.stats_service import StatsAggregator
from services.tracking_service import TrackingService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT = object()


def build_dispatcher(session_factory):
    channels = [
        SmtpChannel(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            settings.EMAIL_USER,
            settings.EMAIL_PASSWORD,
            settings.EMAIL_FROM_NAME,
        ),
        RelayChannel(
            settings.EMAIL_RELAY_URL,
            timeout=settings.EMAIL_RELAY_TIMEOUT_SECONDS,
            from_name=settings.EMAIL_FROM_NAME,
        ),
    ]
    dispatcher = NotificationDispatcher(
        session_factory,
        channels,
        attempts=settings.EMAIL_SEND_ATTEMPTS,
        retry_delay=settings.EMAIL_RETRY_DELAY_SECONDS,
        max_queue_attempts=settings.EMAIL_MAX_QUEUE_ATTEMPTS,
    )
    if not dispatcher.configured:
        logger.error("No email channel configured (EMAIL_USER/EMAIL_PASSWORD or EMAIL_RELAY_URL). Emails will be queued.")
    return dispatcher


def create_app(session_factory=DEFAULT, engine=DEFAULT, dispatcher=None, token_secret=DEFAULT,
               admin_emails=DEFAULT, run_scheduler=True):
    if session_factory is DEFAULT:
        session_factory = AsyncSessionLocal
    if engine is DEFAULT:
        engine = engine_async
    if token_secret is DEFAULT:
        token_secret = settings.JWT_SECRET_KEY
    if admin_emails is DEFAULT:
        admin_emails = settings.ADMIN_EMAILS
    if dispatcher is None:
        dispatcher = build_dispatcher(session_factory)

    notifier = ConversionNotifier(
        dispatcher,
        admin_emails,
        settings.SITE_URL,
        settings.COMMISSION_RATE,
        settings.MIN_PAYOUT_AMOUNT,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        #startup
        if engine is not None:
            try:
                await init_models(engine)
            except Exception:
                logger.exception("Could not create database tables")

        scheduler = None
        if run_scheduler:
            scheduler = AsyncIOScheduler()
            if session_factory is not None:
                scheduler.add_job(
                    dispatcher.reprocess_pending,
                    "interval",
                    minutes=settings.EMAIL_REQUEUE_INTERVAL_MINUTES,
                    id="email-requeue",
                )
            if settings.PEER_SERVERS:
                scheduler.add_job(
                    ping_other_servers,
                    "interval",
                    minutes=settings.PING_INTERVAL_MINUTES,
                    args=[settings.PEER_SERVERS, settings.CURRENT_SERVER_URL],
                    id="peer-keepalive",
                )
            scheduler.start()

        logger.info("Environment: %s", settings.ENVIRONMENT)
        logger.info("Database initialized: %s", session_factory is not None)
        logger.info("Email transport initialized: %s", dispatcher.configured)
        yield

        if scheduler is not None:
            scheduler.shutdown(wait=False)

    app = FastAPI(lifespan=lifespan)

    stats = StatsAggregator(session_factory)
    ledger = BalanceLedger(session_factory)
    app.state.session_factory = session_factory
    app.state.token_secret = token_secret
    app.state.dispatcher = dispatcher
    app.state.tracking = TrackingService(session_factory, stats, ledger, notifier, settings.COMMISSION_RATE)
    app.state.affiliates = AffiliateService(session_factory, notifier, token_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TrackingError)
    async def tracking_error_handler(request: Request, exc: TrackingError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": "Invalid request body", "details": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error", "details": str(exc)}, status_code=500)

    app.include_router(
        tracking.router,
        prefix=settings.API_BASE_PATH,
        tags=["tracking"]
    )

    app.include_router(
        affiliates.router,
        prefix=settings.API_BASE_PATH,
        tags=["affiliates"]
    )

    app.include_router(
        affiliates.dashboard_router,
        prefix=settings.API_BASE_PATH,
        tags=["affiliates"]
    )

    @app.get(f"{settings.API_BASE_PATH}/health")
    async def health():
        return {
            "status": "OK",
            "message": "Server is running",
            "environment": settings.ENVIRONMENT,
            "databaseInitialized": session_factory is not None,
            "emailInitialized": dispatcher.configured,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # Peers call this from their keep-alive sweep
    @app.get(f"{settings.API_BASE_PATH}/ping-status")
    async def ping_status():
        logger.info("Ping-status received")
        return {
            "status": "active",
            "server": settings.SERVER_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Server is running",
        }

    return app


app = create_app()

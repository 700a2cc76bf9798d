import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.sentry import init_sentry
from app.config.settings import AuthConfigs
from app.connections.database import build_engine, build_session_factory, close_db_pool, create_tables
from app.connections.redis_wrapper import RedisJSONWrapper
from app.integrations.sms_gateway import build_sms_gateway
from app.logging.utils import get_app_logger, initialize_logging
from app.middlewares.handlers import register_exception_handlers
from app.middlewares.logging_middleware import AuditMiddleware
from app.repository.users import UserRepository
from app.routes.auth_otp import router as auth_otp_router
from app.routes.health import router as health_router
from app.services.auth_service import AuthService
from app.services.otp_store import OTPStore
from app.services.rate_limiter import RateLimiter
from app.services.token_service import TokenIssuer

logger = get_app_logger('app.main')


def create_app(configs: AuthConfigs | None = None, otp_store: OTPStore | None = None,
               rate_limiter: RateLimiter | None = None, engine=None, session_factory=None,
               sms_gateway=None, token_issuer: TokenIssuer | None = None, clock=time.time) -> FastAPI:
    """
    Build the auth service. Every collaborator can be injected; whatever is
    missing is constructed once here from configuration.
    """
    configs = configs or AuthConfigs()
    logger.info(f"Running in {'debug' if configs.DEBUG else 'production'} mode")

    owns_engine = engine is None
    if engine is None:
        engine = build_engine(configs.DATABASE_URL)
    session_factory = session_factory or build_session_factory(engine)

    redis_client = None
    if otp_store is None or rate_limiter is None:
        redis_client = RedisJSONWrapper(database=configs.REDIS_CACHE_DB)
    if otp_store is None:
        otp_store = OTPStore(redis_client, ttl_seconds=configs.OTP_EXPIRY_SECONDS, clock=clock)
    if rate_limiter is None:
        rate_limiter = RateLimiter(
            redis_client,
            max_requests=configs.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=configs.RATE_LIMIT_WINDOW_SECONDS,
            clock=clock,
        )
    token_issuer = token_issuer or TokenIssuer(
        configs.JWT_SECRET,
        algorithm=configs.JWT_ALGORITHM,
        expiry_days=configs.JWT_EXPIRY_DAYS,
        clock=clock,
    )
    if sms_gateway is None:
        sms_gateway = build_sms_gateway(configs)

    auth_service = AuthService(
        otp_store=otp_store,
        users=UserRepository(session_factory),
        tokens=token_issuer,
        rate_limiter=rate_limiter,
        sms_gateway=sms_gateway,
        configs=configs,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info(f"Starting {configs.APP_NAME} | otp_store={otp_store.backend} demo_mode={configs.DEMO_MODE}")
        if configs.DEMO_MODE:
            logger.warning("Demo mode is on: every login uses the demo OTP")
        if configs.AUTO_CREATE_TABLES:
            create_tables(engine)
        yield
        logger.info(f"Shutting down {configs.APP_NAME}")
        if owns_engine:
            close_db_pool(engine)

    # Disable docs in production (when DEBUG=false)
    app = FastAPI(
        title="Wasil Auth Service",
        version=configs.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if configs.DEBUG else None,
        redoc_url="/redoc" if configs.DEBUG else None,
    )

    app.state.configs = configs
    app.state.otp_store = otp_store
    app.state.token_issuer = token_issuer
    app.state.auth_service = auth_service

    # Request/Audit logging middleware
    app.add_middleware(AuditMiddleware, trusted_proxies=configs.TRUSTED_PROXY_COUNT)

    logger.info(f"Configuring CORS with allowed origins: {configs.ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configs.ALLOWED_ORIGINS,
        allow_credentials="*" not in configs.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth_otp_router, prefix="/auth")
    app.include_router(health_router, tags=["health"])
    return app


def get_app() -> FastAPI:
    """Process entry point: `uvicorn app.main:get_app --factory`."""
    init_sentry()
    initialize_logging()
    return create_app()

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codegate.api.v1.router import api_router
from codegate.config import settings
from codegate.core.database import init_database
from codegate.core.exceptions import AppException, RateLimitError
from codegate.core.redis import RedisClient
from codegate.utils.logger import api_logger, app_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown"""
    app_logger.info("🚀 Application starting up...")

    try:
        init_database()
        app_logger.info("✅ Database initialized successfully")
    except Exception as e:
        app_logger.error(f"❌ Database initialization failed: {e}")

    if settings.throttle_enabled:
        try:
            RedisClient.get_instance().ping()
            app_logger.info("✅ Redis connection successful")
        except Exception as e:
            app_logger.error(f"❌ Redis connection failed: {e}")

    app_logger.info(
        f"✅ {settings.app_name} v{settings.app_version} started")

    yield

    app_logger.info("🛑 Application shutting down...")
    RedisClient.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Email verification codes for signup and password reset",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "message": exc.message,
                "code": exc.code,
                "timestamp": time.time()
            },
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        api_logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "code": "INTERNAL_ERROR",
                "timestamp": time.time()
            }
        )

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()

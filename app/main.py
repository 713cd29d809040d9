# app/main.py
import logging
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.cookies import REFRESH_TOKEN_HEADER, ROTATED_ACCESS_HEADER
from app.core.logging import setup_logging
from app.core.errors import register_error_handlers
from app.api.v1.router import api_router
from app.db.session import engine
from app.services.background import DetachedTaskRunner
from app.services.presence import ConnectionRegistry
from app.services.scheduler import lifespan_scheduler  # lifespan（排程）

# Monitoring
import sentry_sdk
from prometheus_fastapi_instrumentator import Instrumentator

logger = setup_logging(settings.LOG_LEVEL)
log = logging.getLogger(__name__)

_STRICT_ENVS = {"prod", "production", "staging", "preview"}


def _validate_secrets() -> None:
    """
    部署前安全檢查：正式類環境不允許短或空的 SECRET_KEY。
    """
    if (settings.ENV or "").lower() not in _STRICT_ENVS:
        return
    if not settings.SECRET_KEY or len(settings.SECRET_KEY) < 32:
        raise RuntimeError(
            f"Insecure config for SECRET_KEY in ENV={settings.ENV}. "
            "Please set a strong key via environment variables."
        )


def _init_sentry() -> None:
    # 沒有 DSN 就略過
    dsn = settings.SENTRY_DSN or os.getenv("SENTRY_DSN")
    if not dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE),
        environment=settings.SENTRY_ENV or settings.ENV,
    )


def _register_ops_routes(app: FastAPI) -> None:
    @app.get("/", summary="Root")
    async def root():
        return {"app": settings.APP_NAME, "env": settings.ENV}

    @app.get("/healthz", tags=["ops"])
    async def healthz():
        return {"ok": True}

    @app.get("/readyz", tags=["ops"])
    async def readyz():
        # DB 探針；Redis 只在限流啟用時才是必要依賴，這裡不檢查
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log.error("Readiness check failed: %r", exc)
            return JSONResponse(status_code=503, content={"ready": False})
        return {"ready": True}


def create_app() -> FastAPI:
    _validate_secrets()

    # lifespan：APScheduler（denylist 清理）+ 關機收尾
    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan_scheduler,
    )

    # 行程內共用：WebSocket 連線表、背景工作
    app.state.presence = ConnectionRegistry()
    app.state.background = DetachedTaskRunner()

    # CORS（輪替後的新 token 放在 header，要讓前端讀得到）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[ROTATED_ACCESS_HEADER, REFRESH_TOKEN_HEADER],
    )

    _init_sentry()

    # ---- Prometheus /metrics ----
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    register_error_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    _register_ops_routes(app)

    log.info("Application initialized", extra={"env": settings.ENV})
    return app


# Uvicorn 進入點
app = create_app()

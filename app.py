from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from typing import Optional
import logging
import os
import httpx
import uvicorn
import redis.asyncio as redis
from medscribe import __version__
from medscribe.api.routes import upload, transcription, webhooks
from medscribe.config import Settings
from medscribe.database.connection import create_db_and_tables, create_engine_for, create_session_factory
from medscribe.services import BackgroundDispatcher, CallbackTokenSigner, JobCache, WorkflowClient, build_storage
from medscribe.utils import DOCUMENT_TYPES

logger = logging.getLogger("medscribe")


async def connect_redis(redis_url: Optional[str]):
    """Redis é opcional: sem URL ou sem servidor, o cache fica desligado"""
    if not redis_url:
        return None
    try:
        redis_client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await redis_client.ping()
        logger.info("✅ Redis connected")
        return redis_client
    except Exception as e:
        logger.warning(f"⚠️ Redis not available: {e}")
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    # Inicializar banco de dados
    engine = create_engine_for(settings.database_url, echo=settings.debug)
    create_db_and_tables(engine)
    app.state.session_factory = create_session_factory(engine)
    logger.info("✅ Database initialized")

    # Inicializar conexões
    app.state.storage = build_storage(settings)
    app.state.workflow_client = WorkflowClient(
        settings.workflow_url,
        timeout_seconds=settings.workflow_timeout_seconds,
        transport=app.state.workflow_transport
    )
    app.state.dispatcher = BackgroundDispatcher()
    app.state.callback_signer = CallbackTokenSigner(settings.callback_secret, settings.callback_token_ttl_seconds)
    app.state.cache = JobCache(await connect_redis(settings.redis_url), settings.cache_ttl_seconds)

    yield

    # Cleanup: hand-offs em curso têm uma janela para terminar
    await app.state.dispatcher.drain(settings.shutdown_drain_seconds)
    await app.state.workflow_client.close()
    await app.state.cache.close()
    engine.dispose()


def create_app(settings: Optional[Settings] = None,
               workflow_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    app = FastAPI(
        title="Medscribe - Medical Transcription API",
        description="API para transcrição de consultas médicas via workflow externo",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.workflow_transport = workflow_transport

    if settings.storage_backend == "local":
        os.makedirs(settings.upload_dir, exist_ok=True)
        app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Incluir rotas
    app.include_router(upload.router, prefix="/api/v1", tags=["upload"])
    app.include_router(transcription.router, prefix="/api/v1", tags=["transcription"])
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

    @app.get("/")
    async def root():
        return {"message": "Medscribe Transcription API is running"}

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "healthy",
            "version": __version__,
            "storage": settings.storage_backend,
            "cache": request.app.state.cache.enabled,
            "document_types": list(DOCUMENT_TYPES),
        }

    return app


if __name__ == "__main__":
    uvicorn.run(
        "app:create_app",
        factory=True,
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=True
    )

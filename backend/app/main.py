import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from models import async_session, engine
from api.bitrix24 import router as bitrix24_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("taskmirror.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("TaskMirror backend starting... DEBUG=%s", settings.DEBUG)

    # Bitrix24 mirror: background sync scheduler
    b24_module = None
    if settings.BITRIX24_ENABLED:
        from services.bitrix24 import Bitrix24Module
        b24_module = Bitrix24Module(settings, async_session)
        app.state.bitrix24_module = b24_module
        await b24_module.start()
        logger.info("Bitrix24 module enabled")
    else:
        logger.info("Bitrix24 module DISABLED (BITRIX24_ENABLED=false)")

    yield

    # Shutdown
    logger.info("TaskMirror backend shutting down...")
    if b24_module:
        await b24_module.stop()

    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="TaskMirror API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bitrix24_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}

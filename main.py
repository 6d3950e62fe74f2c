from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import asyncio
import uuid
from contextlib import asynccontextmanager, suppress
import logging

from app.config import get_settings
from app.routers import all_routers
from app.services import build_services
from database.connection import create_tables

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    try:
        create_tables()
    except Exception as e:
        logger.warning(f"⚠️  Database initialization failed: {e}. Audit writes will fail until it is reachable.")

    services = build_services(settings)
    app.state.services = services
    cleanup_task = services.session_store.start_cleanup(settings.session_cleanup_interval_seconds)
    logger.info(f"🚀 AD Commands Bot started (dispatch={services.dispatch_strategy.name}, env={settings.environment})")
    try:
        yield
    finally:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
        logger.info("👋 Lifespan shutdown")


app = FastAPI(
    title="AD Commands Bot",
    description="Teams command relay for Active Directory and endpoint actions",
    version="1.0.0",
    lifespan=lifespan,
)

for router in all_routers:
    app.include_router(router)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # pragma: no cover
    rid = str(uuid.uuid4())
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):  # pragma: no cover
    logger.exception("Unhandled error")
    return JSONResponse(status_code=500, content={
        "error": {"type": exc.__class__.__name__, "message": str(exc)},
        "request_id": getattr(request.state, "request_id", None)
    })


@app.get("/")
async def root():
    return {"name": "AD Commands Bot", "status": "running", "version": "1.0.0"}


if __name__ == "__main__":  # pragma: no cover
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)

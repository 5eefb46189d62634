"""HTTP surface: Neynar webhook ingestion, liveness and worker health."""
import json
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from castmint import settings
from castmint.app import Services, build_services
from castmint.errors import CastmintError
from castmint.logging_conf import logger
from castmint.webhook import verify_signature

SIGNATURE_HEADER = "X-Neynar-Signature"
TIMESTAMP_HEADER = "X-Neynar-Timestamp"

router = APIRouter(prefix="/api")


def _error(status_code: int, error: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, "code": code})


@router.post("/webhook/neynar")
async def neynar_webhook(request: Request) -> JSONResponse:
    services: Services = request.app.state.services
    secret = request.app.state.webhook_secret
    if not secret:
        logger.error("WEBHOOK_SECRET is not configured")
        return _error(500, "Server configuration error", "CONFIG_ERROR")

    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    if not verify_signature(body, signature, timestamp, secret):
        logger.warning("Rejected webhook with missing or invalid signature")
        return _error(401, "Invalid signature", "INVALID_SIGNATURE")

    try:
        payload = json.loads(body)
    except ValueError:
        return _error(400, "Invalid webhook payload", "INVALID_PAYLOAD")

    result = await run_in_threadpool(services.ingest.handle_event, payload)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/live")
async def liveness() -> dict:
    """Process liveness. Does not touch the queue store."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health")
async def worker_health(request: Request) -> dict:
    services: Services = request.app.state.services
    state = await run_in_threadpool(services.reporter.get_health)
    return state.to_dict()


def create_app(services: Optional[Services] = None, run_worker: Optional[bool] = None,
               webhook_secret: Optional[str] = None) -> FastAPI:
    """Build the FastAPI app.

    When ``services`` is omitted they are built from settings at startup. The
    queue store is connected on startup and closed on shutdown; if
    ``run_worker`` is true the mint worker runs in a background thread and is
    drained before the store is released.
    """
    if run_worker is None:
        run_worker = settings.RUN_WORKER

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        if app.state.services is None:
            settings.validate_config()
            app.state.services = build_services()
        svc: Services = app.state.services
        try:
            svc.connect()
            svc.history.ensure_schema()
        except CastmintError as e:
            logger.error(f"Startup failed: {e}")
            raise

        if run_worker:
            svc.worker.start()
        logger.info("castmint API started")

        yield

        if run_worker:
            await run_in_threadpool(svc.worker.stop)
        svc.close()
        logger.info("Application shutdown completed")

    app = FastAPI(title="castmint", description="Mint Farcaster casts as NFTs", lifespan=lifespan)
    app.state.services = services
    app.state.webhook_secret = webhook_secret if webhook_secret is not None else settings.WEBHOOK_SECRET
    app.include_router(router)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, e: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {e}", exc_info=True)
        return _error(500, "Internal server error", "INTERNAL_ERROR")

    return app


def main() -> None:
    try:
        settings.validate_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    uvicorn.run(
        "castmint.api:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()

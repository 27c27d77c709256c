from __future__ import annotations
import datetime as dt
import logging
import os
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from .blobs import get_blob_store
from .config import get_settings
from .db import ensure_tables, get_engine
from .errors import InfrastructureFault, ValidationFault
from .routers.files import router as files_router
from .routers.links import router as links_router, system_router
from .routers.public import router as public_router

logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=get_settings().app_name)

ensure_tables()

app.include_router(public_router)
app.include_router(files_router)
app.include_router(links_router)
app.include_router(system_router)


@app.exception_handler(ValidationFault)
def validation_fault_handler(request: Request, exc: ValidationFault):
    return JSONResponse(status_code=400, content={"detail": str(exc), "field": exc.field})


@app.exception_handler(InfrastructureFault)
def infrastructure_fault_handler(request: Request, exc: InfrastructureFault):
    # Fail closed without leaking backend details
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.get("/ping")
def ping():
    return {"status": "ok"}


@app.get("/version")
def version():
    """Return build/version information for the server."""
    return {
        "version": os.getenv("GIT_COMMIT", os.getenv("COMMIT", "unknown")),
        "build": os.getenv("BUILD_DATE", "unknown"),
    }


@app.get("/healthz")
def healthz():
    """Run simple checks for the database and the blob store."""
    db_status = "ok"
    blob_status = "ok"
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = f"error: {type(e).__name__}"
    try:
        get_blob_store().ping()
    except (InfrastructureFault, ValueError) as e:
        blob_status = f"error: {type(e).__name__}"
    ok = db_status == "ok" and blob_status == "ok"
    body = {
        "status": "ok" if ok else "error",
        "ok": ok,
        "db": db_status,
        "blobs": blob_status,
        "serverTime": int(dt.datetime.now(dt.timezone.utc).timestamp() * 1_000_000),
    }
    return JSONResponse(status_code=200 if ok else 503, content=body)

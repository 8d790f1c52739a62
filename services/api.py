# NG-HEADER: Nombre de archivo: api.py
# NG-HEADER: Ubicación: services/api.py
# NG-HEADER: Descripción: Aplicación FastAPI: logging, manejo de errores de dominio y routers.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Aplicación FastAPI principal de Cuadra."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.responses import JSONResponse

from cuadra_core.config import settings
from db.session import engine
import db.models  # noqa: F401  asegura que la metadata tenga todas las tablas
from services.errors import DomainError, InvariantViolation
from .routers import documents, stock, subtypes

level_name = settings.log_level
logger = logging.getLogger("cuadra")
logger.setLevel(level_name)
LOG_DIR = Path(__file__).resolve().parents[1] / settings.log_dir
fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

if not logger.handlers:
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    logger.addHandler(stream_handler)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        # delay=True evita abrir el archivo hasta el primer log
        file_handler = RotatingFileHandler(
            str(LOG_DIR / "backend.log"), maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8", delay=True
        )
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)
    except OSError as exc:
        # Sin permisos de escritura: continuar sólo con consola
        logger.warning("No se pudo abrir el log en %s: %s", LOG_DIR, exc)

for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).handlers = list(logger.handlers)
    logging.getLogger(name).setLevel(level_name)

# `redirect_slashes=False` evita redirecciones 307 entre `/ruta` y `/ruta/`.
app = FastAPI(title="Cuadra", redirect_slashes=False)
logger.info("DB effective URL: %s", engine.url.render_as_string(hide_password=True))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Registra cada solicitud con su duración."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Traduce errores de dominio a JSON.

    - ValidationError -> 422 {"code": "validation_error", "errors": {campo: mensaje}}
    - InsufficientStockError -> 409
    - NotFoundError -> 404
    - InvariantViolation -> 500 genérico (el detalle queda sólo en el log)
    """
    if isinstance(exc, InvariantViolation):
        logger.error("Invariante violada en %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s %s: %s", exc.status_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Conflictos de unicidad conocidos -> 409 sin filtrar información sensible.

    - fiscal_documents.document_number -> duplicate_ncf
    - product_stocks (product_id, workspace_id) -> duplicate_stock
    """
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    logger.warning("IntegrityError en %s %s: %s", request.method, request.url.path, raw)
    if "uq_fiscal_documents_number" in raw or "fiscal_documents.document_number" in raw:
        return JSONResponse(status_code=409, content={
            "code": "validation_error",
            "errors": {"ncf": "Este NCF ya está en uso por otro comprobante"},
        })
    if "uq_product_stocks_product_workspace" in raw or "product_stocks.product_id" in raw:
        return JSONResponse(status_code=409, content={"code": "duplicate_stock", "detail": "El stock ya existe para la ubicación"})
    return JSONResponse(status_code=409, content={"code": "conflict", "detail": "conflict"})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Errores de esquema con la misma forma que los de dominio (campo -> mensaje)."""
    errors: dict[str, str] = {}
    for e in exc.errors():
        loc = [str(p) for p in e.get("loc", []) if p not in ("body", "query", "path", "header")]
        errors[".".join(loc) or "body"] = e.get("msg", "")
    logger.warning("Validación fallida 422 %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=422, content={"code": "validation_error", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Error no controlado en %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"code": "internal_error", "detail": "Error interno"})


app.include_router(subtypes.router)
app.include_router(documents.router)
app.include_router(stock.router)


@app.get("/health")
async def health():
    return {"status": "ok"}

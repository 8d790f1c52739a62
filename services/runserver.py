# NG-HEADER: Nombre de archivo: runserver.py
# NG-HEADER: Ubicación: services/runserver.py
# NG-HEADER: Descripción: Arranque local de la API con Uvicorn.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Servidor de desarrollo local.

En Windows fija la política de event loop Selector antes de iniciar Uvicorn
para que psycopg async funcione.
"""

from __future__ import annotations

import asyncio
import os
import sys

import uvicorn

from cuadra_core.config import settings


def _apply_windows_loop_policy() -> None:
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


def main() -> None:
    _apply_windows_loop_policy()
    uvicorn.run(
        "services.api:app",
        host=os.getenv("CUADRA_HOST", "127.0.0.1"),
        port=int(os.getenv("CUADRA_PORT", "8000")),
        reload=settings.env == "dev",
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()

# NG-HEADER: Nombre de archivo: deps.py
# NG-HEADER: Ubicación: services/routers/deps.py
# NG-HEADER: Descripción: Dependencias compartidas de los routers (actor explícito).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import Header


async def actor_id(x_actor_id: Optional[int] = Header(None, alias="X-Actor-Id")) -> Optional[int]:
    """Usuario que ejecuta la operación; viaja explícito en cada request."""
    return x_actor_id

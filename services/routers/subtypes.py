# NG-HEADER: Nombre de archivo: subtypes.py
# NG-HEADER: Ubicación: services/routers/subtypes.py
# NG-HEADER: Descripción: Endpoints de tipos de comprobante (secuencias NCF) y validación de NCF.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import DocumentKind
from db.session import get_session
from services.numbering import subtypes as svc
from services.numbering.validator import validate_ncf
from services.routers.deps import actor_id
from services.errors import NotFoundError
from services.schemas import (
    NCFValidateRequest,
    SubtypeCreate,
    SubtypePreferenceRequest,
    SubtypeUpdate,
    preference_out,
    subtype_out,
)

router = APIRouter(tags=["ncf"])


@router.get("/subtypes")
async def list_subtypes(kind: Optional[DocumentKind] = Query(None), db: AsyncSession = Depends(get_session)):
    rows = await svc.list_subtypes(db, kind)
    return {"items": [subtype_out(s) for s in rows], "total": len(rows)}


@router.get("/subtypes/health")
async def subtypes_health(db: AsyncSession = Depends(get_session)):
    """Secuencias próximas a vencer o con pocos números disponibles."""
    rows = await svc.list_subtypes(db)
    return {"items": [svc.sequence_health(s).as_dict() for s in rows]}


@router.post("/subtypes", status_code=201)
async def create_subtype(payload: SubtypeCreate, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    sequence = await svc.create_subtype(db, payload.model_dump(), actor)
    return subtype_out(sequence)


@router.get("/subtypes/{subtype_id}")
async def get_subtype(subtype_id: int, db: AsyncSession = Depends(get_session)):
    return subtype_out(await svc.get_subtype(db, subtype_id))


@router.patch("/subtypes/{subtype_id}")
async def update_subtype(subtype_id: int, payload: SubtypeUpdate, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    sequence = await svc.update_subtype(db, subtype_id, payload.model_dump(exclude_unset=True), actor)
    return subtype_out(sequence)


@router.delete("/subtypes/{subtype_id}")
async def delete_subtype(subtype_id: int, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    await svc.delete_subtype(db, subtype_id, actor)
    return {"status": "deleted", "id": subtype_id}


@router.get("/subtypes/{subtype_id}/workspaces")
async def subtype_workspaces(subtype_id: int, db: AsyncSession = Depends(get_session)):
    """Ubicaciones que tienen la secuencia como preferida."""
    ids = await svc.preferred_workspace_ids(db, subtype_id)
    return {"items": ids, "total": len(ids)}


@router.put("/workspaces/{workspace_id}/subtypes/{subtype_id}/preference")
async def set_preference(
    workspace_id: int,
    subtype_id: int,
    payload: SubtypePreferenceRequest,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    link = await svc.set_workspace_preference(db, workspace_id, subtype_id, payload.is_preferred, actor)
    return preference_out(link)


@router.get("/workspaces/{workspace_id}/subtypes/default")
async def workspace_default_subtype(
    workspace_id: int,
    kind: DocumentKind = Query(DocumentKind.INVOICE),
    db: AsyncSession = Depends(get_session),
):
    """Secuencia a usar por defecto en la ubicación (preferida vigente o default global)."""
    sequence = await svc.default_subtype(db, kind, workspace_id)
    if sequence is None:
        raise NotFoundError("Tipo de comprobante por defecto", kind.value)
    return subtype_out(sequence)


@router.post("/ncf/validate")
async def validate(payload: NCFValidateRequest, db: AsyncSession = Depends(get_session)):
    """Chequeo previo de un NCF ingresado a mano (no reserva el número)."""
    subtype = await svc.get_subtype(db, payload.document_subtype_id) if payload.document_subtype_id else None
    check = await validate_ncf(
        db,
        payload.ncf,
        subtype,
        issue_date=payload.issue_date,
        exclude_document_id=payload.document_id,
    )
    return {"valid": check.valid, "message": check.message}

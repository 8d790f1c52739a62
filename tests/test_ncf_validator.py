# NG-HEADER: Nombre de archivo: test_ncf_validator.py
# NG-HEADER: Ubicación: tests/test_ncf_validator.py
# NG-HEADER: Descripción: Pruebas del validador de NCF (rango, vigencia, orden y unicidad).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import date, timedelta
from decimal import Decimal

import pytest

from db.enums import DocumentKind, DocumentStatus
from db.models import FiscalDocument
from services.errors import ValidationError
from services.numbering.validator import ensure_valid_ncf, validate_ncf

pytestmark = pytest.mark.asyncio


async def _document(db, workspace, contact, subtype, number, kind=DocumentKind.INVOICE):
    doc = FiscalDocument(
        kind=kind.value,
        workspace_id=workspace.id,
        contact_id=contact.id,
        document_subtype_id=subtype.id,
        document_number=number,
        status=(DocumentStatus.DRAFT if kind is DocumentKind.INVOICE else DocumentStatus.NON_CONVERTED).value,
        issue_date=date.today(),
        total_amount=Decimal("0"),
    )
    db.add(doc)
    await db.commit()
    return doc


async def test_valid_number_inside_range(db_session, make_subtype):
    s = await make_subtype("B01", start=1, end=1000, next_number=1, valid_until=date.today() + timedelta(days=30))
    check = await validate_ncf(db_session, "B0100000050", s)
    assert check.valid
    assert check.message == "NCF válido"
    assert (check.prefix, check.number) == ("B01", 50)


async def test_null_valid_until_is_valid(db_session, make_subtype):
    s = await make_subtype("B01", valid_until=None)
    assert (await validate_ncf(db_session, "B0100000001", s)).valid


async def test_null_end_number_allows_large_numbers(db_session, make_subtype):
    s = await make_subtype("B01", end=None)
    assert (await validate_ncf(db_session, "B0100001500", s)).valid


async def test_leading_zeros_are_parsed(db_session, make_subtype):
    s = await make_subtype("B01", start=1, end=10)
    check = await validate_ncf(db_session, "B0100000005", s)
    assert check.valid
    assert check.number == 5


async def test_range_boundaries_are_inclusive(db_session, make_subtype):
    s = await make_subtype("B01", start=100, end=200, next_number=100)
    assert (await validate_ncf(db_session, "B0100000100", s)).valid
    assert (await validate_ncf(db_session, "B0100000200", s)).valid


async def test_invalid_format(db_session, b01):
    for value in ("B0", "B01", "B01XYZ"):
        check = await validate_ncf(db_session, value, b01)
        assert not check.valid
        assert check.message == "Formato de NCF inválido"


async def test_unknown_prefix(db_session, b01):
    check = await validate_ncf(db_session, "E3100000001", b01)
    assert not check.valid
    assert check.message == "Prefijo de NCF no encontrado"


async def test_prefix_of_other_subtype_rejected(db_session, b01, make_subtype):
    await make_subtype("B02")
    check = await validate_ncf(db_session, "B0200000001", b01)
    assert not check.valid
    assert "no corresponde" in check.message


async def test_expired_sequence(db_session, make_subtype):
    s = await make_subtype("B01", valid_until=date.today() - timedelta(days=1))
    check = await validate_ncf(db_session, "B0100000001", s)
    assert not check.valid
    assert check.message == "La secuencia de NCF está expirada o agotada"


async def test_exhausted_sequence(db_session, make_subtype):
    s = await make_subtype("B01", start=1, end=10, next_number=11)
    check = await validate_ncf(db_session, "B0100000011", s)
    assert not check.valid
    assert check.message == "La secuencia de NCF está expirada o agotada"


async def test_issue_date_after_valid_until(db_session, make_subtype):
    until = date.today() + timedelta(days=5)
    s = await make_subtype("B01", valid_until=until)
    check = await validate_ncf(db_session, "B0100000001", s, issue_date=until + timedelta(days=1))
    assert not check.valid
    assert check.message == "La secuencia de NCF está expirada o agotada"


async def test_number_above_end(db_session, make_subtype):
    s = await make_subtype("B01", start=1, end=100)
    check = await validate_ncf(db_session, "B0100000150", s)
    assert not check.valid
    assert "fuera del rango" in check.message


async def test_number_below_start(db_session, make_subtype):
    s = await make_subtype("B01", start=100, end=200, next_number=100)
    check = await validate_ncf(db_session, "B0100000050", s)
    assert not check.valid
    assert "fuera del rango" in check.message


async def test_number_below_next_is_rejected(db_session, make_subtype):
    s = await make_subtype("B01", start=1, end=1000, next_number=100)
    check = await validate_ncf(db_session, "B0100000050", s)
    assert not check.valid
    assert check.message == "El número debe ser igual o mayor a 100 (B0100000100)"


async def test_duplicate_across_kinds(db_session, workspace, contact, b01):
    # Una cotización con el número ya lo ocupa para facturas
    await _document(db_session, workspace, contact, b01, "B0100000050", kind=DocumentKind.QUOTATION)
    check = await validate_ncf(db_session, "B0100000050", b01)
    assert not check.valid
    assert check.message == "Este NCF ya está en uso por otro comprobante"


async def test_own_number_is_not_a_duplicate(db_session, workspace, contact, b01):
    doc = await _document(db_session, workspace, contact, b01, "B0100000001")
    b01.next_number = 2
    await db_session.commit()
    check = await validate_ncf(db_session, "B0100000001", b01, exclude_document_id=doc.id)
    assert check.valid
    other = await validate_ncf(db_session, "B0100000001", b01, exclude_document_id=doc.id + 1)
    assert other.message == "Este NCF ya está en uso por otro comprobante"


async def test_ensure_raises_field_keyed_error(db_session, b01):
    with pytest.raises(ValidationError) as exc:
        await ensure_valid_ncf(db_session, "B01", b01)
    assert exc.value.errors == {"ncf": "Formato de NCF inválido"}
    assert exc.value.to_payload() == {"code": "validation_error", "errors": {"ncf": "Formato de NCF inválido"}}

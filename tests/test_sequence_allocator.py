# NG-HEADER: Nombre de archivo: test_sequence_allocator.py
# NG-HEADER: Ubicación: tests/test_sequence_allocator.py
# NG-HEADER: Descripción: Pruebas del asignador de secuencias NCF.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import date, timedelta

import pytest

from db.uow import unit_of_work
from services.errors import NotFoundError, ValidationError
from services.numbering.allocator import advance_to, allocate_next, consume_next, lock_sequence

pytestmark = pytest.mark.asyncio


async def test_allocate_next_formats_without_persisting(db_session, b01, next_number_of):
    assert allocate_next(b01) == "B0100000001"
    assert allocate_next(b01) == "B0100000001"
    assert await next_number_of("B01") == 1


async def test_allocate_next_rejects_invalid_sequence(make_subtype):
    expired = await make_subtype("B02", name="Factura de Consumo", valid_until=date.today() - timedelta(days=1))
    with pytest.raises(ValidationError) as exc:
        allocate_next(expired)
    assert "Factura de Consumo" in exc.value.errors["document_subtype_id"]

    exhausted = await make_subtype("B03", start=1, end=5, next_number=6)
    with pytest.raises(ValidationError):
        allocate_next(exhausted)


async def test_advance_to_uses_max(db_session, b01, next_number_of):
    async with unit_of_work(db_session):
        await advance_to(db_session, b01, 50)
    assert await next_number_of("B01") == 51

    # Número manual por encima del contador: salta
    async with unit_of_work(db_session):
        await advance_to(db_session, b01, 51)
    assert await next_number_of("B01") == 52


async def test_advance_to_never_moves_backwards(db_session, b01, next_number_of, caplog):
    async with unit_of_work(db_session):
        await advance_to(db_session, b01, 9)
    with caplog.at_level("ERROR", logger="cuadra.numbering"):
        async with unit_of_work(db_session):
            await advance_to(db_session, b01, 3)
    assert await next_number_of("B01") == 10
    assert any("retroceder" in r.getMessage() for r in caplog.records)


async def test_consume_next_is_monotonic(db_session, b01, next_number_of):
    numbers = []
    for _ in range(5):
        async with unit_of_work(db_session):
            numbers.append(await consume_next(db_session, b01))
    assert numbers == [f"B01{n:08d}" for n in range(1, 6)]
    assert await next_number_of("B01") == 6


async def test_rollback_reverts_counter(db_session, b01, next_number_of):
    subtype_id = b01.id
    with pytest.raises(RuntimeError):
        async with unit_of_work(db_session):
            await consume_next(db_session, subtype_id)
            raise RuntimeError("falla posterior")
    assert await next_number_of("B01") == 1


async def test_lock_sequence_missing(db_session):
    with pytest.raises(NotFoundError):
        await lock_sequence(db_session, 999)


async def test_open_sequence_stops_at_eight_digits(make_subtype):
    cot = await make_subtype("COT", end=None, next_number=99_999_999)
    assert allocate_next(cot) == "COT99999999"

    cot.next_number = 100_000_000
    assert cot.is_exhausted()
    with pytest.raises(ValidationError):
        allocate_next(cot)

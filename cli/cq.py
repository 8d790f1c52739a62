# NG-HEADER: Nombre de archivo: cq.py
# NG-HEADER: Ubicación: cli/cq.py
# NG-HEADER: Descripción: CLI de Cuadra: esquema, series NCF y estado de secuencias.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""CLI principal de Cuadra usando Typer."""
from __future__ import annotations

import asyncio

import typer

from db.session import SessionLocal, init_schema
from db.uow import unit_of_work
from services.errors import DomainError
from services.numbering import subtypes as subtypes_svc
from services.numbering.allocator import allocate_next, consume_next

app = typer.Typer(help="Herramientas de línea de comandos para Cuadra")


@app.command("init-db")
def init_db() -> None:
    """Crea las tablas declaradas (dev). En producción usar ``alembic upgrade head``."""
    asyncio.run(init_schema())
    typer.echo("Esquema creado")


@app.command("seed-subtypes")
def seed_subtypes() -> None:
    """Crea las series NCF de la DGII (B01..B17) y la de cotizaciones si faltan."""

    async def _run() -> list[str]:
        async with SessionLocal() as session:
            return await subtypes_svc.seed_default_subtypes(session)

    created = asyncio.run(_run())
    if created:
        typer.echo(f"Series creadas: {', '.join(created)}")
    else:
        typer.echo("Todas las series ya existían")


@app.command("sequences")
def sequences() -> None:
    """Estado de cada secuencia: próximo NCF, restantes y alertas."""

    async def _run():
        async with SessionLocal() as session:
            rows = await subtypes_svc.list_subtypes(session)
            return [subtypes_svc.sequence_health(s) for s in rows]

    report = asyncio.run(_run())
    if not report:
        typer.echo("No hay secuencias configuradas")
        return
    for h in report:
        flags = []
        if not h.valid:
            flags.append("INVALIDA")
        if h.near_expiration:
            flags.append("POR VENCER")
        if h.running_low:
            flags.append("POCOS NUMEROS")
        remaining = "sin límite" if h.remaining is None else str(h.remaining)
        typer.echo(f"{h.prefix}  {h.name:<40} próximo={h.next_ncf}  restantes={remaining}  {' '.join(flags)}".rstrip())


@app.command("next-ncf")
def next_ncf(
    prefix: str,
    consume: bool = typer.Option(False, "--consume", help="Reserva el número avanzando la secuencia"),
) -> None:
    """Muestra (o reserva con ``--consume``) el próximo NCF de la secuencia PREFIX."""

    async def _run() -> str:
        async with SessionLocal() as session:
            sequence = await subtypes_svc.find_by_prefix(session, prefix)
            if sequence is None:
                raise typer.BadParameter(f"Prefijo de NCF no encontrado: {prefix}")
            if not consume:
                return allocate_next(sequence)
            async with unit_of_work(session):
                return await consume_next(session, sequence)

    try:
        typer.echo(asyncio.run(_run()))
    except DomainError as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

# NG-HEADER: Nombre de archivo: ncf_utils.py
# NG-HEADER: Ubicación: db/ncf_utils.py
# NG-HEADER: Descripción: Utilidades de formato y parseo de NCF (prefijo + número).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Helpers del Número de Comprobante Fiscal (NCF).

Formato: prefijo de 3 caracteres + número rellenado con ceros (8 dígitos por
defecto, ``NCF_NUMBER_WIDTH``).

Ejemplos válidos:
  B0100000042
  B0200000001

Casos NO válidos:
  B0           (muy corto)
  B01ABC       (sufijo no numérico)
  B01          (sin número)
  B011         (número sin rellenar a 8 dígitos)
"""
from __future__ import annotations

import re

from cuadra_core.config import settings

PREFIX_LENGTH = settings.ncf_prefix_length
NCF_SUFFIX_REGEX = re.compile(r"^[0-9]+$")


def max_ncf_number(width: int | None = None) -> int:
    """Mayor número que cabe en el ancho del NCF (99999999 con 8 dígitos)."""
    width = width or settings.ncf_number_width
    return 10 ** width - 1


def format_ncf(prefix: str, number: int, width: int | None = None) -> str:
    """Construye el NCF: ``format_ncf("B01", 42) == "B0100000042"``."""
    width = width or settings.ncf_number_width
    return f"{prefix}{int(number):0{width}d}"


def split_ncf(value: str | None) -> tuple[str, int] | None:
    """Separa un NCF en (prefijo, número).

    Returns:
        ``None`` si el valor es muy corto, la parte numérica no son sólo dígitos
        o no tiene exactamente ``NCF_NUMBER_WIDTH`` dígitos.
    """
    if not value:
        return None
    value = value.strip()
    if len(value) <= PREFIX_LENGTH:
        return None
    prefix, suffix = value[:PREFIX_LENGTH], value[PREFIX_LENGTH:]
    if not NCF_SUFFIX_REGEX.fullmatch(suffix):
        return None
    if len(suffix) != settings.ncf_number_width:
        return None
    return prefix, int(suffix)


def is_well_formed(value: str | None) -> bool:
    return split_ncf(value) is not None

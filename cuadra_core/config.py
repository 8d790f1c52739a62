# NG-HEADER: Nombre de archivo: config.py
# NG-HEADER: Ubicación: cuadra_core/config.py
# NG-HEADER: Descripción: Configuración central leída del entorno (.env).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Configuración central de Cuadra."""

from __future__ import annotations

import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Carga automática de variables definidas en .env
load_dotenv()


@dataclass
class Settings:
    """Parámetros de configuración leídos de variables de entorno."""

    env: str = os.getenv("ENV", "dev")
    db_url: str = os.getenv("DB_URL", "")
    # Soporte para componer la URL si no se pasa DB_URL directamente
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: str = os.getenv("DB_PORT", "5432")
    db_name: str = os.getenv("DB_NAME", "cuadra")
    db_user: str = os.getenv("DB_USER", "")
    db_pass: str = os.getenv("DB_PASS", "")
    debug_sql: bool = os.getenv("DEBUG_SQL", "0") == "1"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: str = os.getenv("LOG_DIR", "logs")

    # Numeración fiscal (NCF): B01 + 8 dígitos
    ncf_prefix_length: int = 3
    ncf_number_width: int = int(os.getenv("NCF_NUMBER_WIDTH", "8"))
    # Alertas de secuencias: vencimiento próximo y números restantes
    ncf_expiry_warning_days: int = int(os.getenv("NCF_EXPIRY_WARNING_DAYS", "30"))
    ncf_low_remaining: int = int(os.getenv("NCF_LOW_REMAINING", "100"))

    def __post_init__(self) -> None:
        if not self.db_url:
            # Intentar construir desde variables sueltas
            if self.db_pass:
                from urllib.parse import quote_plus as _qp
                pw_enc = _qp(self.db_pass)
            else:
                pw_enc = ""
            if self.db_user and pw_enc:
                candidate = f"postgresql+psycopg://{self.db_user}:{pw_enc}@{self.db_host}:{self.db_port}/{self.db_name}"
            elif self.db_user:
                candidate = f"postgresql+psycopg://{self.db_user}@{self.db_host}:{self.db_port}/{self.db_name}"
            else:
                candidate = ""
            if candidate:
                self.db_url = candidate
        if not self.db_url:
            if self.env == "dev":
                # Fallback local para no bloquear el arranque sin Postgres
                self.db_url = "sqlite+aiosqlite:///./dev.db"
            else:
                raise RuntimeError("DB_URL debe definirse en el entorno")

        level = (self.log_level or "INFO").strip().upper()
        import logging
        if level not in logging.getLevelNamesMapping():
            level = "INFO"
        self.log_level = level

        if self.ncf_number_width < 1:
            raise RuntimeError("NCF_NUMBER_WIDTH debe ser mayor que cero")


settings = Settings()

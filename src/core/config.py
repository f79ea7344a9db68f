"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (HTTP, registry, precios) lean config de forma consistente.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PRICE_API = "https://api.coingecko.com/api/v3/simple/price?ids=hive&vs_currencies=usd"
DEFAULT_BEACON_URL = "https://beacon.peakd.com"


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "hive-rewards"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "hive-rewards"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "hive-rewards"
    return Path.home() / ".config" / "hive-rewards"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            data[key] = value.strip().strip('"').strip("'")
    return data


def write_user_env_vars(values: dict[str, str | None], env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario.

    Un valor `None` elimina la variable (p. ej. para des-fijar un nodo).
    """

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    for key, value in values.items():
        if value is None:
            existing.pop(key, None)
        else:
            existing[key] = value

    lines = ["# hive-rewards user config (.env)"]
    lines.extend(f"{key}={existing[key]}" for key in sorted(existing))
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


def _check_url(value: str | None) -> str | None:
    if value is None:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {value}")
    return value


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters.

    Nota:
    - `hours` es la ventana por defecto; las llamadas `inbounds`/`outbounds` la
      sobrescriben de forma transitoria y la restauran al terminar.
    """

    model_config = SettingsConfigDict(
        env_prefix="HIVE_REWARDS_",
        extra="ignore",
        case_sensitive=False,
        validate_assignment=True,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    hours: float = Field(
        default=24,
        gt=0,
        description="Ventana de análisis por defecto (horas).",
    )
    api_calls_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Pausa entre páginas de historial (rate limit del upstream).",
    )
    price_cache_mins: int = Field(
        default=10,
        ge=0,
        description="TTL del precio HIVE/USD memorizado (minutos).",
    )
    hive_history_limit: int = Field(
        default=500,
        ge=1,
        le=1000,
        description="Tamaño de página del historial de Hive.",
    )
    he_history_limit: int = Field(
        default=250,
        ge=1,
        le=1000,
        description="Tamaño de página del historial de Hive-Engine.",
    )

    hive_price_url: str = Field(
        default=DEFAULT_PRICE_API,
        description="Fuente del precio HIVE/USD (formato CoinGecko simple/price).",
    )
    beacon_url: str = Field(
        default=DEFAULT_BEACON_URL,
        description="Base del feed de descubrimiento de nodos.",
    )
    beacon_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Timeout de la consulta al beacon (segundos).",
    )
    health_stale_after_seconds: float = Field(
        default=600.0,
        gt=1,
        description="Antigüedad máxima de la lista de nodos sanos (segundos).",
    )

    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout por llamada remota (segundos).",
    )
    retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Intentos por llamada lógica (incluye el primero).",
    )
    retry_base_delay_ms: int = Field(
        default=300,
        ge=0,
        description="Base del backoff exponencial (ms).",
    )

    hive_node_url: str | None = Field(
        default=None,
        description="Fija un nodo Hive y omite el descubrimiento.",
    )
    hive_engine_rpc_url: str | None = Field(
        default=None,
        description="Fija un nodo RPC de Hive-Engine y omite el descubrimiento.",
    )
    hive_engine_history_url: str | None = Field(
        default=None,
        description="Fija un nodo de historial de Hive-Engine y omite el descubrimiento.",
    )

    user_agent: str = Field(
        default="hive-rewards/0.1 (+https://local)",
        min_length=1,
        description="User-Agent para las peticiones.",
    )
    verbose: bool = Field(
        default=False,
        description="Traza peticiones/respuestas de los ledgers en nivel DEBUG.",
    )

    @field_validator(
        "hive_price_url",
        "beacon_url",
        "hive_node_url",
        "hive_engine_rpc_url",
        "hive_engine_history_url",
    )
    @classmethod
    def _validate_url(cls, value: str | None) -> str | None:
        return _check_url(value)

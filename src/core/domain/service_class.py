"""Clases de servicio que atiende el registro de nodos.

Por qué aquí:
- Cada servicio remoto es una *clase* de nodos intercambiables.
- Ruta de descubrimiento, feature requerida y lista estática viven junto al
  enum; registro, bootstrap y `doctor` leen de aquí.
"""

from __future__ import annotations

from enum import Enum

_DISCOVERY_PATHS: dict[str, str] = {
    "hive": "api/nodes",
    "he": "api/he/nodes",
    "heh": "api/heh/nodes",
}

_REQUIRED_FEATURES: dict[str, str] = {
    "hive": "get_account_history",
    "he": "check_market_metrics",
    "heh": "get_account_history",
}

_DEFAULT_NODES: dict[str, tuple[str, ...]] = {
    "hive": (
        "https://api.hive.blog",
        "https://api.deathwing.me",
        "https://hive-api.arcange.eu",
        "https://api.openhive.network",
        "https://anyx.io",
    ),
    "he": (
        "https://engine.rishipanthee.com",
        "https://api.primersion.com",
        "https://he.ausbit.dev",
    ),
    "heh": (
        "https://engine.rishipanthee.com",
        "https://api.primersion.com",
        "https://he.ausbit.dev",
    ),
}


class ServiceClass(str, Enum):
    """Familias de servicio remoto, cada una con su pool de nodos."""

    HIVE = "hive"
    HE = "he"
    HEH = "heh"

    @property
    def discovery_path(self) -> str:
        """Ruta del feed del beacon con los nodos de esta clase."""

        return _DISCOVERY_PATHS[self.value]

    @property
    def required_feature(self) -> str:
        """Feature que un nodo debe anunciar para ser elegible."""

        return _REQUIRED_FEATURES[self.value]

    @property
    def default_nodes(self) -> tuple[str, ...]:
        """Lista estática usada si el descubrimiento no devuelve nada."""

        return _DEFAULT_NODES[self.value]

    def label(self) -> str:
        """Etiqueta legible para tablas y logs."""

        return {
            ServiceClass.HIVE: "Hive RPC",
            ServiceClass.HE: "Hive-Engine RPC",
            ServiceClass.HEH: "Hive-Engine history",
        }[self]

"""Adaptadores de ledgers remotos.

Por qué un paquete:
- Agrupa un módulo por ledger (Hive, Hive-Engine).
- Cada módulo implementa un contrato de `core.interfaces.ledgers`.
"""

from adapters.ledger_sources.hive import HiveApi
from adapters.ledger_sources.hive_engine import HiveEngineApi

__all__ = [
	"HiveApi",
	"HiveEngineApi",
]

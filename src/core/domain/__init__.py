"""Modelos y entidades del dominio.

Por qué:
- Aquí viven los reportes, registros de ledger y mapeos de categorías (Pydantic v2).
- El dominio no conoce HTTP, CLI ni nodos concretos: solo conceptos del problema.
"""

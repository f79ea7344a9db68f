"""Interfaces/abstracciones del Core.

Por qué:
- Define los contratos (Protocol) de ledgers y fuentes de precio.
- El escáner y el orquestador dependen de ellos, no de httpx.
"""

"""Exportación JSON de los reportes.

Por qué JSON:
- Interoperabilidad con hojas de cálculo, bots de pago y otros pipelines.
- El shape es el mismo que devuelven `inbounds` / `outbounds`.
"""

from __future__ import annotations

import json
from pathlib import Path

from core.domain.models import InboundsResult, OutboundsResult


def export_report_json(result: InboundsResult | OutboundsResult, output_path: Path) -> Path:
    """Exporta el resultado a JSON UTF-8 (orden de claves preservado)."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = result.model_dump(mode="json", exclude_none=True)
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    return output_path

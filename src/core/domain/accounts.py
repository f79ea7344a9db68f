"""Cuentas y mapeos de categorías.

Por qué aquí:
- La normalización de claves de categoría ocurre una sola vez, al ingresar la
  petición, y no se repite en cada clasificación.
- La validación de nombres de cuenta sigue las reglas de la cadena Hive sin
  depender de un SDK.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping

from core.domain.errors import ValidationError

_SEGMENT_CHARS_RE = re.compile(r"^[a-z0-9-]*$")
_KEY_SEPARATORS_RE = re.compile(r"[\s\-]+")


def validate_account_name(name: str | None) -> str | None:
    """Devuelve un mensaje de error si `name` no es un nombre de cuenta Hive válido.

    Reglas (las mismas que aplica la cadena):
    - 3 a 16 caracteres.
    - Segmentos separados por `.`; cada uno empieza por minúscula, contiene solo
      minúsculas, dígitos o guiones (sin `--`), termina en letra o dígito y
      tiene al menos 3 caracteres.
    """

    if not name:
        return "Account name should not be empty."
    if len(name) < 3:
        return "Account name should be longer."
    if len(name) > 16:
        return "Account name should be shorter."

    subject = "Each account segment should" if "." in name else "Account name should"
    for segment in name.split("."):
        if not segment[:1].isalpha() or not segment[:1].islower():
            return f"{subject} start with a lowercase letter."
        if not _SEGMENT_CHARS_RE.match(segment):
            return f"{subject} have only lowercase letters, digits, or dashes."
        if "--" in segment:
            return f"{subject} have only one dash in a row."
        if not (segment[-1].islower() or segment[-1].isdigit()):
            return f"{subject} end with a lowercase letter or digit."
        if len(segment) < 3:
            return f"{subject} be longer."
    return None


def normalize_category_key(key: str) -> str:
    """`PVP_HIVE`, `pvp-hive` y `Pvp Hive` se normalizan a `pvp_hive`."""

    return _KEY_SEPARATORS_RE.sub("_", key.strip()).lower()


class CategoryMapping(Mapping[str, str]):
    """Mapeo ordenado `categoría -> cuenta origen`.

    Invariantes:
    - Las claves están normalizadas y son únicas.
    - Cada cuenta pertenece a una sola categoría, así la clasificación de un
      registro entrante es determinista.
    """

    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._by_key: dict[str, str] = {}
        self._by_account: dict[str, str] = {}
        for raw_key, raw_account in (entries or {}).items():
            key = normalize_category_key(str(raw_key))
            account = str(raw_account or "").strip().lower()
            if not key:
                raise ValidationError(f"Empty category key for account '{raw_account}'")
            if not account:
                raise ValidationError(f"Category '{raw_key}' has no sender account")
            if key in self._by_key:
                raise ValidationError(f"Category '{raw_key}' is duplicated after normalization ('{key}')")
            if account in self._by_account:
                raise ValidationError(
                    f"Account '{account}' is mapped to both '{self._by_account[account]}' and '{key}'"
                )
            self._by_key[key] = account
            self._by_account[account] = key

    def __getitem__(self, key: str) -> str:
        return self._by_key[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_key)

    def __len__(self) -> int:
        return len(self._by_key)

    def __repr__(self) -> str:
        return f"CategoryMapping({self._by_key!r})"

    @property
    def accounts(self) -> frozenset[str]:
        return frozenset(self._by_account)

    def category_for(self, account: str) -> str | None:
        """Categoría de la cuenta origen, o `None` si no está rastreada."""

        return self._by_account.get(account)

    def as_dict(self) -> dict[str, str]:
        return dict(self._by_key)

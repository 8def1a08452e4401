"""Level-based anonymization of structured payloads.

Walks strings, dicts and lists recursively and returns a new structure:

    low     pass-through
    medium  drop name-like keys, replace introduced names in free text
    high    medium + drop location/date keys, replace locations, dates and
            personal identifiers (e-mail, IBAN, card, DNI/NIE, SSN, phone)

Deterministic and idempotent at a fixed level: every placeholder is bracketed,
upper-case and digit-free, so no pattern can match it on a second pass.

Usage:
    anonymize({"nombre": "Ana", "goals": ["me llamo Ana Ruiz"]}, "medium")
    # -> {"goals": ["me llamo [NOMBRE]"]}
"""

from __future__ import annotations

import re
from typing import Any

from nutribot.models.enums import AnonymizationLevel

# ── Placeholders ─────────────────────────────────────────────────────

NAME_PLACEHOLDER = "[NOMBRE]"
LOCATION_PLACEHOLDER = "[UBICACION]"
DATE_PLACEHOLDER = "[FECHA]"

# ── Keys ─────────────────────────────────────────────────────────────

# Compared after lower-casing and removing "_", "-" and spaces
_NAME_KEYS: frozenset[str] = frozenset({
    "name", "firstname", "lastname", "fullname", "surname", "middlename",
    "username", "displayname", "nickname",
    "nombre", "apellido", "apellidos", "nombrecompleto", "primerapellido", "segundoapellido",
})

_LOCATION_DATE_KEYS: frozenset[str] = frozenset({
    "address", "street", "city", "town", "region", "province", "state", "country",
    "zip", "zipcode", "postcode", "postalcode", "location", "coordinates", "latitude", "longitude",
    "direccion", "calle", "ciudad", "localidad", "municipio", "provincia", "pais", "codigopostal",
    "ubicacion",
    "date", "birthdate", "dateofbirth", "dob", "birthday",
    "fecha", "fechanacimiento", "fechadenacimiento",
})


def _normalize_key(key: str) -> str:
    return re.sub(r"[\s_\-]", "", key).lower()


# ── Free-text patterns ───────────────────────────────────────────────

_CAP_WORD = r"[A-ZÁÉÍÓÚÑÜ][a-záéíóúñü]+"
_CAP_WORDS = rf"{_CAP_WORD}(?:\s+{_CAP_WORD})*"

_NAME_INTRO = re.compile(
    rf"\b((?i:me llamo|mi nombre es|my name is|i am called))\s+{_CAP_WORDS}"
)
_HONORIFIC = re.compile(rf"\b(Sr\.|Sra\.|Srta\.|Dr\.|Dra\.|Mr\.|Mrs\.|Ms\.)\s*{_CAP_WORDS}")

_LOCATION_INTRO = re.compile(
    rf"\b((?i:vivo en|resido en|soy de|vengo de|i live in|i am from|i'm from))\s+{_CAP_WORDS}"
)

# Applied in order; earlier patterns consume digits later ones could misread
_IDENTIFIER_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+"), "[EMAIL]"),
    (re.compile(r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){3,7}(?:\s?[A-Z0-9]{1,3})?\b"), "[IBAN]"),
    (re.compile(r"\b(?:\d[ -]?){12,18}\d\b"), "[TARJETA]"),
    (re.compile(r"\b[XYZ]?\d{7,8}-?[A-Z]\b"), "[DNI]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN]"),
    (
        re.compile(
            r"\b\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
            r"|\b\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}\b"
        ),
        DATE_PLACEHOLDER,
    ),
    (re.compile(r"(?<![\w\]])\+?\d[\d\s().-]{7,}\d(?!\w)"), "[TELEFONO]"),
)


def anonymize_text(text: str, level: AnonymizationLevel | str) -> str:
    """Apply the free-text rules of a level to one string."""
    level = AnonymizationLevel(level)
    if level is AnonymizationLevel.LOW:
        return text

    text = _NAME_INTRO.sub(rf"\1 {NAME_PLACEHOLDER}", text)
    text = _HONORIFIC.sub(rf"\1 {NAME_PLACEHOLDER}", text)
    if level is AnonymizationLevel.MEDIUM:
        return text

    text = _LOCATION_INTRO.sub(rf"\1 {LOCATION_PLACEHOLDER}", text)
    for pattern, placeholder in _IDENTIFIER_PATTERNS:
        text = pattern.sub(placeholder, text)
    return text


def _dropped_keys(level: AnonymizationLevel) -> frozenset[str]:
    if level is AnonymizationLevel.HIGH:
        return _NAME_KEYS | _LOCATION_DATE_KEYS
    return _NAME_KEYS


def _walk(value: Any, level: AnonymizationLevel, dropped: frozenset[str]) -> Any:
    if isinstance(value, str):
        return anonymize_text(value, level)
    if isinstance(value, dict):
        return {
            key: _walk(item, level, dropped)
            for key, item in value.items()
            if not (isinstance(key, str) and _normalize_key(key) in dropped)
        }
    if isinstance(value, (list, tuple)):
        return [_walk(item, level, dropped) for item in value]
    return value


def anonymize(payload: Any, level: AnonymizationLevel | str) -> Any:
    """Return an anonymized copy of `payload`. Never mutates the input.

    Raises ValueError for an unknown level.
    """
    level = AnonymizationLevel(level)
    if level is AnonymizationLevel.LOW:
        return payload
    return _walk(payload, level, _dropped_keys(level))

"""Data minimization — reduce a payload to what an operation needs.

Each operation category has a static, typed schema: the top-level fields the
operation may see. Everything else is dropped. Independently, a global
deny-list of direct identifiers is stripped at every depth, whatever the
category.

Usage:
    minimize({"age": 34, "email": "a@b.es", "notes": "..."}, OperationCategory.HEALTH_ASSESSMENT)
    # -> {"age": 34}
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from nutribot.models.enums import OperationCategory


def _normalize_key(key: str) -> str:
    return re.sub(r"[\s_\-]", "", key).lower()


# Direct identifiers, compared after normalization (camelCase and snake_case alike)
GLOBAL_DENY_LIST: frozenset[str] = frozenset({
    "email", "emailaddress", "correo", "correoelectronico",
    "phone", "phonenumber", "telephone", "mobile", "telefono", "movil",
    "address", "streetaddress", "direccion", "domicilio",
    "socialsecuritynumber", "ssn", "numeroseguridadsocial",
    "passport", "passportnumber", "pasaporte",
    "driverlicense", "driverslicense", "driverlicence", "carnetdeconducir",
    "creditcard", "cardnumber", "cvv", "cvc", "tarjeta",
    "iban", "bankaccount",
    "nationalid", "dni", "nie", "nif", "taxid",
})


@dataclass(frozen=True)
class MinimizationSchema:
    """Top-level fields an operation category is allowed to receive."""

    category: OperationCategory
    allowed_fields: frozenset[str]

    def permits(self, field: str) -> bool:
        return field in self.allowed_fields


_PROFILE_FIELDS = frozenset({
    "age", "weight", "height", "gender", "activityLevel",
    "goals", "medicalConditions", "allergies", "dietaryPreferences",
})

SCHEMAS: dict[OperationCategory, MinimizationSchema] = {
    OperationCategory.HEALTH_ASSESSMENT: MinimizationSchema(
        OperationCategory.HEALTH_ASSESSMENT,
        _PROFILE_FIELDS | {"answers", "questionId", "answer", "confidence"},
    ),
    OperationCategory.PERSONALIZED_ADVICE: MinimizationSchema(
        OperationCategory.PERSONALIZED_ADVICE,
        _PROFILE_FIELDS | {"query", "context"},
    ),
    OperationCategory.MEAL_PLAN: MinimizationSchema(
        OperationCategory.MEAL_PLAN,
        frozenset({"duration", "preferences", "restrictions", "goals", "allergies", "dietaryPreferences"}),
    ),
    OperationCategory.PROGRESS_TRACKING: MinimizationSchema(
        OperationCategory.PROGRESS_TRACKING,
        frozenset({"metrics", "date", "goals"}),
    ),
}


def strip_denied(value: Any) -> Any:
    """Remove deny-listed keys at every depth."""
    if isinstance(value, Mapping):
        return {
            key: strip_denied(item)
            for key, item in value.items()
            if not (isinstance(key, str) and _normalize_key(key) in GLOBAL_DENY_LIST)
        }
    if isinstance(value, (list, tuple)):
        return [strip_denied(item) for item in value]
    return value


def minimize(payload: Mapping[str, Any], category: OperationCategory | str) -> dict[str, Any]:
    """Apply the category allow-list, then the global deny-list.

    Raises TypeError when the payload is not a mapping and ValueError for an
    unknown category.
    """
    if not isinstance(payload, Mapping):
        msg = f"Cannot minimize a {type(payload).__name__}; expected a mapping"
        raise TypeError(msg)
    schema = SCHEMAS[OperationCategory(category)]
    allowed = {key: value for key, value in payload.items() if schema.permits(key)}
    return strip_denied(allowed)

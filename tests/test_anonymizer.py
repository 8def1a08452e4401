"""Tests for level-based anonymization."""

from __future__ import annotations

import pytest

from nutribot.models.enums import AnonymizationLevel
from nutribot.privacy.anonymizer import (
    DATE_PLACEHOLDER,
    LOCATION_PLACEHOLDER,
    NAME_PLACEHOLDER,
    anonymize,
    anonymize_text,
)

PAYLOAD = {
    "nombre": "Ana",
    "lastName": "Ruiz",
    "city": "Madrid",
    "fechaNacimiento": "1990-04-12",
    "age": 34,
    "goals": ["me llamo Ana Ruiz y quiero perder peso"],
    "notes": "Vivo en Sevilla desde el 12/03/2020, escríbeme a ana@example.com",
    "nested": {"first_name": "Ana", "answers": [{"answer": "my name is Ana"}]},
}


def _count_fields(value) -> int:
    if isinstance(value, dict):
        return len(value) + sum(_count_fields(v) for v in value.values())
    if isinstance(value, list):
        return sum(_count_fields(v) for v in value)
    return 0


class TestLevels:
    def test_low_is_pass_through(self) -> None:
        assert anonymize(PAYLOAD, AnonymizationLevel.LOW) is PAYLOAD

    def test_medium_drops_name_keys(self) -> None:
        result = anonymize(PAYLOAD, AnonymizationLevel.MEDIUM)
        assert "nombre" not in result
        assert "lastName" not in result
        assert "first_name" not in result["nested"]
        assert result["age"] == 34

    def test_medium_replaces_introduced_names(self) -> None:
        result = anonymize(PAYLOAD, "medium")
        assert result["goals"] == [f"me llamo {NAME_PLACEHOLDER} y quiero perder peso"]
        assert result["nested"]["answers"][0]["answer"] == f"my name is {NAME_PLACEHOLDER}"

    def test_medium_keeps_locations(self) -> None:
        result = anonymize(PAYLOAD, "medium")
        assert result["city"] == "Madrid"
        assert "Sevilla" in result["notes"]

    def test_high_drops_locations_and_dates(self) -> None:
        result = anonymize(PAYLOAD, AnonymizationLevel.HIGH)
        assert "city" not in result
        assert "fechaNacimiento" not in result
        assert LOCATION_PLACEHOLDER in result["notes"]
        assert DATE_PLACEHOLDER in result["notes"]
        assert "[EMAIL]" in result["notes"]
        assert "Sevilla" not in result["notes"]

    def test_high_strips_strictly_more_than_medium(self) -> None:
        medium = anonymize(PAYLOAD, "medium")
        high = anonymize(PAYLOAD, "high")
        assert _count_fields(high) < _count_fields(medium)

    def test_does_not_mutate_input(self) -> None:
        before = repr(PAYLOAD)
        anonymize(PAYLOAD, "high")
        assert repr(PAYLOAD) == before

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError):
            anonymize(PAYLOAD, "extreme")


class TestIdempotence:
    @pytest.mark.parametrize("level", list(AnonymizationLevel))
    def test_second_pass_is_a_no_op(self, level: AnonymizationLevel) -> None:
        once = anonymize(PAYLOAD, level)
        assert anonymize(once, level) == once

    @pytest.mark.parametrize(
        "text",
        [
            "Sr. García llamó al +34 612 345 678",
            "DNI 12345678Z, IBAN ES91 2100 0418 4502 0005 1332",
            "tarjeta 4111 1111 1111 1111, SSN 123-45-6789",
            "I am from Valencia, born 1990-04-12T10:00:00Z",
        ],
    )
    def test_text_idempotent_at_high(self, text: str) -> None:
        once = anonymize_text(text, "high")
        assert anonymize_text(once, "high") == once
        assert any(ch.isdigit() for ch in text)
        assert not any(ch.isdigit() for ch in once)


class TestIdentifiers:
    def test_phone(self) -> None:
        assert anonymize_text("llámame al 612 345 678", "high") == "llámame al [TELEFONO]"

    def test_dni(self) -> None:
        assert anonymize_text("mi DNI es 12345678Z", "high") == "mi DNI es [DNI]"

    def test_health_numbers_survive_medium(self) -> None:
        assert anonymize_text("peso 70 kg y mido 172 cm", "medium") == "peso 70 kg y mido 172 cm"

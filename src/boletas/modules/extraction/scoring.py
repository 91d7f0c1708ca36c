"""
Confidence scoring for extracted receipt fields.

Every field gets a score from the way its value was obtained (a labeled
``TOTAL: $ 44.995`` beats a bare number somewhere on the slip, and a default
scores lowest). When raw OCR text is available the slip is also checked for
the shape of a receipt; every failed check adds an issue and scales the
overall score down.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from boletas.modules.extraction import fields as fx

METHOD_CONFIDENCE: dict[str, float] = {
    fx.LABELED: 0.95,
    fx.PATENTE: 0.85,
    fx.PATTERN: 0.85,
    fx.STRUCTURED: 0.85,
    fx.CURRENCY: 0.75,
    fx.KEYWORD: 0.7,
    fx.LITERAL: 0.6,
    fx.ESTIMATED: 0.6,
    fx.FILENAME: 0.3,
    fx.FALLBACK: 0.4,
    fx.DEFAULT: 0.0,
}

# Defaulting these is harmless: "Otros" and a generic description are valid values.
SOFT_DEFAULT_CONFIDENCE: dict[str, float] = {"category": 0.3, "description": 0.3}

FIELD_WEIGHTS: dict[str, float] = {
    "total": 0.35,
    "date": 0.25,
    "vendor": 0.2,
    "category": 0.1,
    "description": 0.1,
}

DEFAULT_ISSUES: dict[str, str] = {
    "date": "No se pudo determinar la fecha; se usó la fecha actual",
    "total": "No se pudo determinar el monto total",
    "vendor": "No se pudo determinar el vendedor",
    "category": "No se pudo determinar la categoría; se asignó «Otros»",
    "description": "No se pudo generar una descripción",
}

HARD_FIELDS = ("total", "date")

RECEIPT_KEYWORDS = ("total", "boleta", "rut", "fecha")
MIN_TEXT_LENGTH = 50

_DATE_TOKEN_RE = re.compile(r"\d{1,4}[/\-.]\d{1,2}[/\-.]\d{1,4}")
_AMOUNT_TOKEN_RE = re.compile(r"\$\s*\d|\d{1,3}(?:\.\d{3})+")

SHAPE_PENALTY = {
    "date_token": 0.7,
    "amount_token": 0.7,
    "keywords": 0.8,
    "length": 0.9,
}


@dataclass
class ValidationResult:
    is_valid: bool
    issues: list[str] = field(default_factory=list)
    confidence: dict[str, float] = field(default_factory=dict)

    @property
    def overall(self) -> float:
        return self.confidence.get("overall", 0.0)


def field_confidence(name: str, method: str) -> float:
    if method == fx.DEFAULT and name in SOFT_DEFAULT_CONFIDENCE:
        return SOFT_DEFAULT_CONFIDENCE[name]
    return METHOD_CONFIDENCE.get(method, 0.5)


def _shape_issues(text: str) -> list[tuple[str, str]]:
    failed: list[tuple[str, str]] = []
    lowered = text.lower()
    if not _DATE_TOKEN_RE.search(text):
        failed.append(("date_token", "No se encontró una fecha en el texto"))
    if not _AMOUNT_TOKEN_RE.search(text):
        failed.append(("amount_token", "No se encontró un monto en el texto"))
    if sum(1 for k in RECEIPT_KEYWORDS if k in lowered) < 2:
        failed.append(("keywords", "El texto no parece ser una boleta"))
    if len(text.strip()) < MIN_TEXT_LENGTH:
        failed.append(("length", "El texto extraído es muy corto"))
    return failed


def score_extraction(
    extraction: fx.Extraction, *, raw_text: str | None = None, threshold: float = 0.6
) -> ValidationResult:
    issues: list[str] = []
    confidence: dict[str, float] = {}

    for name in FIELD_WEIGHTS:
        method = extraction.methods.get(name, fx.DEFAULT)
        confidence[name] = field_confidence(name, method)
        if method == fx.DEFAULT:
            issues.append(DEFAULT_ISSUES[name])

    if extraction.methods.get("total") == fx.FALLBACK:
        issues.append("El monto se tomó de un número sin etiqueta «total»; verifíquelo")

    overall = sum(confidence[name] * w for name, w in FIELD_WEIGHTS.items())

    if raw_text is not None:
        for check, message in _shape_issues(raw_text):
            issues.append(message)
            overall *= SHAPE_PENALTY[check]

    overall = round(min(max(overall, 0.0), 1.0), 4)
    confidence["overall"] = overall

    hard_default = any(extraction.methods.get(name) == fx.DEFAULT for name in HARD_FIELDS)
    return ValidationResult(
        is_valid=overall > threshold and not hard_default,
        issues=issues,
        confidence=confidence,
    )

from __future__ import annotations

import pytest

from boletas.modules.extraction import fields as fx
from boletas.modules.extraction.scoring import score_extraction

FARMACIA_TEXT = """FARMACIA CRUZ VERDE
RUT: 76.123.456-7
BOLETA ELECTRONICA
FECHA: 01/01/2024
PARACETAMOL 500MG
TOTAL $ 10.000
"""


def test_well_formed_receipt_is_valid():
    extraction = fx.extract_fields(FARMACIA_TEXT)
    result = score_extraction(extraction, raw_text=FARMACIA_TEXT)

    assert result.is_valid
    assert result.issues == []
    assert result.confidence["total"] == pytest.approx(0.95)
    assert result.overall == pytest.approx(0.87)


def test_empty_text_is_invalid_and_explains_why():
    extraction = fx.extract_fields("")
    result = score_extraction(extraction, raw_text="")

    assert not result.is_valid
    assert "No se pudo determinar el vendedor" in result.issues
    assert "No se pudo determinar el monto total" in result.issues
    assert "El texto extraído es muy corto" in result.issues
    assert result.overall < 0.1


def test_default_total_invalidates_even_with_high_score():
    extraction = fx.fields_from_structured(
        {"date": "2024-01-01", "vendor": "Copec", "category": "Transporte", "description": "Bencina"}
    )
    result = score_extraction(extraction, threshold=0.1)

    assert result.overall > 0.1
    assert not result.is_valid


def test_structured_fields_skip_shape_checks():
    extraction = fx.fields_from_structured(
        {
            "date": "2024-01-01",
            "total": 5000,
            "vendor": "Copec",
            "category": "Transporte",
            "description": "Bencina",
        }
    )
    result = score_extraction(extraction)

    assert result.is_valid
    assert result.overall == pytest.approx(0.85)


def test_fallback_total_is_flagged():
    text = "VALOR A PAGAR\n35.000"
    result = score_extraction(fx.extract_fields(text), raw_text=text)
    assert any("etiqueta" in issue for issue in result.issues)

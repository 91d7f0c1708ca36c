"""
Field extraction from OCR text of Chilean receipts (boletas).

Each field is resolved by an ordered cascade of small functions
``text -> value | None``; the first one that returns a value wins. A cascade
step that raises is skipped, never fatal, so ``extract_fields`` always
returns a complete record, falling back to defaults.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeVar

from boletas.core.logging import get_logger, log_event
from boletas.core.money import estimate_tax, normalize_amount, parse_pesos, to_pesos

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_VENDOR = "No identificado"
DEFAULT_CATEGORY = "Otros"
DEFAULT_DESCRIPTION = "Boleta procesada"
ERROR_VENDOR = "Error de procesamiento"
ERROR_DESCRIPTION = "No se pudo extraer información"
DEFAULT_IVA_RATE = Decimal("0.19")

MAX_TOTAL = 10_000_000
EXCERPT_CHARS = 500

# How a field value was obtained, from most to least specific.
LABELED = "labeled"
PATENTE = "patente"
PATTERN = "pattern"
STRUCTURED = "structured"
CURRENCY = "currency"
KEYWORD = "keyword"
LITERAL = "literal"
ESTIMATED = "estimated"
FILENAME = "filename"
FALLBACK = "fallback"
DEFAULT = "default"


@dataclass
class ExtractedFields:
    date: date
    total: int
    vendor: str
    category: str
    tax_amount: int
    description: str


@dataclass
class Extraction:
    fields: ExtractedFields
    methods: dict[str, str] = field(default_factory=dict)
    text_excerpt: str | None = None

    def used_default(self, name: str) -> bool:
        return self.methods.get(name) == DEFAULT


@dataclass(frozen=True)
class Found:
    value: Any
    method: str


Step = Callable[[str], Found | None]


def _first_success(steps: Sequence[Step], text: str, *, field_name: str) -> Found | None:
    for step in steps:
        try:
            found = step(text)
        except Exception as e:  # noqa: BLE001
            log_event(
                logger,
                "extraction.step.error",
                field=field_name,
                step=getattr(step, "__name__", repr(step)),
                error_type=type(e).__name__,
            )
            continue
        if found is not None:
            return found
    return None


# --- dates -----------------------------------------------------------------

SPANISH_MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

_DMY_RE = re.compile(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)")
_YMD_RE = re.compile(r"(?<!\d)(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?!\d)")
_SPANISH_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})\s+de\s+([a-záéíóú]+)\s+de\s+(\d{4})", re.I)


def _valid_date(year: int, month: int, day: int) -> date | None:
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        # 31/02 and friends pass the range check but are not calendar dates
        return None


def _date_day_month_year(text: str) -> Found | None:
    for m in _DMY_RE.finditer(text):
        d = _valid_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        if d:
            return Found(d, PATTERN)
    return None


def _date_year_month_day(text: str) -> Found | None:
    for m in _YMD_RE.finditer(text):
        d = _valid_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if d:
            return Found(d, PATTERN)
    return None


def _date_spanish_words(text: str) -> Found | None:
    for m in _SPANISH_DATE_RE.finditer(text):
        month = SPANISH_MONTHS.get(m.group(2).lower())
        if not month:
            continue
        d = _valid_date(int(m.group(3)), month, int(m.group(1)))
        if d:
            return Found(d, PATTERN)
    return None


DATE_STEPS: tuple[Step, ...] = (
    _date_day_month_year,
    _date_year_month_day,
    _date_spanish_words,
)


def parse_date_text(raw: str) -> date | None:
    """Parse a single date string in any of the supported receipt formats."""
    s = raw.strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    found = _first_success(DATE_STEPS, s, field_name="date")
    return found.value if found else None


# --- totals ----------------------------------------------------------------

# Either a dot-grouped number ("44.995", "1.234.567,50") or a plain run of digits.
_NUM = r"(?<![\d.,])(\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?|\d+(?:,\d{1,2})?)(?![\d])"

AMOUNT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (LABELED, re.compile(r"\btotal\s*:\s*\$?\s*" + _NUM, re.I)),
    (LABELED, re.compile(r"\btotal\s+\$?\s*" + _NUM, re.I)),
    (LABELED, re.compile(r"\btotal[:\s]*\$?\s*" + _NUM, re.I)),
    (LABELED, re.compile(r"\bimporte[:\s]*\$?\s*" + _NUM, re.I)),
    (CURRENCY, re.compile(r"\$\s*" + _NUM)),
    (CURRENCY, re.compile(_NUM + r"\s*pesos\b", re.I)),
    (CURRENCY, re.compile(_NUM + r"\s*clp\b", re.I)),
    (FALLBACK, re.compile(r"(?<![\d.,])(\d{1,3}(?:\.\d{3})+)(?![\d.,])")),
)

_PATENTE_TOKEN_RE = re.compile(r"(?<![\d.,])(\d{2}\.\d{3})(?![\d.,])")
_CONTEXT_BEFORE = 30
_CONTEXT_AFTER = 100
_PATENTE_TAIL_LINES = 10


def _in_range(amount: int) -> bool:
    return 0 < amount <= MAX_TOTAL


def _total_patente(text: str) -> Found | None:
    # Municipal business-license slips print the amount bare near the bottom.
    if "patente" not in text.lower():
        return None
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    for ln in lines[-_PATENTE_TAIL_LINES:]:
        for m in _PATENTE_TOKEN_RE.finditer(ln):
            amount = parse_pesos(m.group(1))
            if amount is not None and _in_range(amount):
                return Found(amount, PATENTE)
    return None


def _total_by_patterns(text: str) -> Found | None:
    first: Found | None = None
    lowered = text.lower()
    for method, pattern in AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            amount = parse_pesos(m.group(1))
            if amount is None or not _in_range(amount):
                continue
            start = m.start()
            context = lowered[max(0, start - _CONTEXT_BEFORE) : start + _CONTEXT_AFTER]
            if "total" in context:
                return Found(amount, method)
            if first is None:
                first = Found(amount, method)
    return first


TOTAL_STEPS: tuple[Step, ...] = (_total_patente, _total_by_patterns)


# --- tax -------------------------------------------------------------------

_IVA_RE = re.compile(r"\biva\b[^\n\d$]{0,20}\$?\s*" + _NUM, re.I)


def _tax_labeled(text: str) -> Found | None:
    for m in _IVA_RE.finditer(text):
        amount = parse_pesos(m.group(1))
        if amount is not None and _in_range(amount):
            return Found(amount, LABELED)
    return None


# --- vendor ----------------------------------------------------------------

VENDOR_MIN_LEN = 5
VENDOR_MAX_LEN = 50

KNOWN_VENDORS: tuple[str, ...] = (
    "CRUZ VERDE",
    "SALCOBRAND",
    "FARMACIAS AHUMADA",
    "DR. SIMI",
    "SANTA ISABEL",
    "UNIMARC",
    "JUMBO",
    "LIDER",
    "TOTTUS",
    "ACUENTA",
    "SODIMAC",
    "FALABELLA",
    "RIPLEY",
    "COPEC",
    "PETROBRAS",
    "SHELL",
    "STARBUCKS",
    "MCDONALD'S",
    "CABIFY",
    "UBER",
)

_VENDOR_STOPWORDS = (
    "boleta",
    "factura",
    "electronica",
    "electrónica",
    "total",
    "fecha",
    "rut",
    "iva",
    "gracias",
    "s.i.i",
    "sii",
    "timbre",
)

_RUT_LINE_RE = re.compile(r"\brut\b[:\s]*[\d.]+-?[\dkK]?", re.I)
_VENDOR_LABEL_RE = re.compile(
    r"(?:empresa|negocio|comercio|tienda|raz[oó]n\s+social)[:\s]+([^\n\r]{5,80})", re.I
)
_UPPER_NAME_RE = re.compile(r"^[A-ZÁÉÍÓÚÑÜ][A-ZÁÉÍÓÚÑÜ0-9\s&.,'\-]{14,79}$")
_NAME_CHARS_RE = re.compile(r"^[a-záéíóúñü][a-záéíóúñü0-9\s&.,'\-]*$", re.I)


def _acceptable_vendor(candidate: str) -> str | None:
    name = " ".join(candidate.split()).strip(" .,-:")
    if not (VENDOR_MIN_LEN <= len(name) <= VENDOR_MAX_LEN):
        return None
    lowered = name.lower()
    if any(re.search(rf"\b{re.escape(w)}\b", lowered) for w in _VENDOR_STOPWORDS):
        return None
    return name


def _lines(text: str) -> list[str]:
    return [ln.strip() for ln in text.splitlines() if ln.strip()]


def _vendor_after_rut(text: str) -> Found | None:
    lines = _lines(text)
    for i, ln in enumerate(lines[:-1]):
        if not _RUT_LINE_RE.search(ln):
            continue
        nxt = lines[i + 1]
        if _NAME_CHARS_RE.match(nxt) and not any(ch.isdigit() for ch in nxt):
            name = _acceptable_vendor(nxt)
            if name:
                return Found(name, PATTERN)
    return None


def _vendor_labeled(text: str) -> Found | None:
    for m in _VENDOR_LABEL_RE.finditer(text):
        name = _acceptable_vendor(m.group(1))
        if name:
            return Found(name, LABELED)
    return None


def _vendor_uppercase_line(text: str) -> Found | None:
    lines = _lines(text)
    for i, ln in enumerate(lines):
        if not _UPPER_NAME_RE.match(ln):
            continue
        # A business name heads the slip; amounts and dates follow it.
        if not any(any(ch.isdigit() for ch in later) for later in lines[i + 1 :]):
            continue
        name = _acceptable_vendor(ln)
        if name:
            return Found(name, PATTERN)
    return None


def _vendor_known_literal(text: str) -> Found | None:
    upper = text.upper()
    for literal in KNOWN_VENDORS:
        if re.search(rf"(?<![A-Z]){re.escape(literal)}(?![A-Z])", upper):
            return Found(literal, LITERAL)
    return None


VENDOR_STEPS: tuple[Step, ...] = (
    _vendor_after_rut,
    _vendor_labeled,
    _vendor_uppercase_line,
    _vendor_known_literal,
)


# --- category --------------------------------------------------------------

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Alimentación": (
        "supermercado",
        "restaurant",
        "comida",
        "panadería",
        "panaderia",
        "carnicería",
        "verdulería",
        "café",
        "cafe",
        "almacén",
        "market",
        "bebida",
        "alimento",
        "almuerzo",
        "cena",
    ),
    "Transporte": (
        "taxi",
        "uber",
        "cabify",
        "metro",
        "bus",
        "gasolina",
        "bencina",
        "combustible",
        "estacionamiento",
        "peaje",
        "transporte",
        "pasaje",
    ),
    "Oficina": (
        "papel",
        "tinta",
        "oficina",
        "papelería",
        "computador",
        "impresora",
        "software",
        "licencia",
        "suministros",
    ),
    "Servicios": (
        "patente",
        "municipal",
        "notaría",
        "notaria",
        "abogado",
        "contador",
        "consultoría",
        "asesoría",
        "mantención",
    ),
    "Salud": (
        "farmacia",
        "médico",
        "medico",
        "clínica",
        "clinica",
        "hospital",
        "dentista",
        "medicamento",
        "consulta",
    ),
    "Hogar": (
        "ferretería",
        "ferreteria",
        "construcción",
        "limpieza",
        "hogar",
        "mueble",
        "decoración",
    ),
}


def guess_category(text: str) -> Found | None:
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return Found(category, KEYWORD)
    return None


# --- description -----------------------------------------------------------

_ONLY_DIGITS_RE = re.compile(r"^\d+$")
_ONLY_MONEY_RE = re.compile(r"^[\d.,\s$]+$")
_LABEL_RE = re.compile(r"rut|fecha|total|subtotal", re.I)
DESCRIPTION_LINES = 3


def _description_from_lines(text: str) -> Found | None:
    picked: list[str] = []
    for ln in _lines(text):
        if not (3 < len(ln) < 100):
            continue
        if _ONLY_DIGITS_RE.match(ln) or _ONLY_MONEY_RE.match(ln) or _LABEL_RE.search(ln):
            continue
        picked.append(ln)
        if len(picked) == DESCRIPTION_LINES:
            break
    if not picked:
        return None
    return Found(", ".join(picked), PATTERN)


# --- entry points ----------------------------------------------------------


def _resolve(
    steps: Sequence[Step], text: str, *, field_name: str, default: T
) -> tuple[T, str]:
    found = _first_success(steps, text, field_name=field_name)
    if found is None:
        return default, DEFAULT
    return found.value, found.method


def extract_fields(
    text: str | None,
    *,
    today: date | None = None,
    iva_rate: Decimal = DEFAULT_IVA_RATE,
) -> Extraction:
    """Best-effort fields from raw OCR text. Never raises."""
    raw = (text or "").replace("\u202f", " ").replace("\xa0", " ")
    today = today or date.today()

    tx_date, date_method = _resolve(DATE_STEPS, raw, field_name="date", default=today)
    total, total_method = _resolve(TOTAL_STEPS, raw, field_name="total", default=0)
    vendor, vendor_method = _resolve(VENDOR_STEPS, raw, field_name="vendor", default=DEFAULT_VENDOR)
    category, category_method = _resolve(
        (guess_category,), raw, field_name="category", default=DEFAULT_CATEGORY
    )
    description, description_method = _resolve(
        (_description_from_lines,), raw, field_name="description", default=DEFAULT_DESCRIPTION
    )

    tax_found = _first_success((_tax_labeled,), raw, field_name="tax_amount")
    if tax_found is not None and tax_found.value < max(total, 1):
        tax_amount, tax_method = tax_found.value, tax_found.method
    else:
        tax_amount, tax_method = estimate_tax(total, rate=iva_rate), ESTIMATED

    return Extraction(
        fields=ExtractedFields(
            date=tx_date,
            total=total,
            vendor=vendor,
            category=category,
            tax_amount=tax_amount,
            description=description,
        ),
        methods={
            "date": date_method,
            "total": total_method,
            "vendor": vendor_method,
            "category": category_method,
            "description": description_method,
            "tax_amount": tax_method,
        },
        text_excerpt=raw[:EXCERPT_CHARS] if raw.strip() else None,
    )


def _coerce_total(raw: Any) -> int | None:
    if not isinstance(raw, (int, float, str, Decimal)):
        return None
    value = normalize_amount(raw)
    if value is None:
        return None
    amount = to_pesos(value)
    return amount if amount >= 0 else None


def _clean_str(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    s = " ".join(raw.split())
    return s or None


def fields_from_structured(
    obj: dict[str, Any],
    *,
    method: str = STRUCTURED,
    today: date | None = None,
    iva_rate: Decimal = DEFAULT_IVA_RATE,
) -> Extraction:
    """
    Normalize fields a vision model (or a filename heuristic) already structured.

    Dates may be ISO or any receipt format; totals may be numbers or strings
    with currency symbols and Chilean separators.
    """
    today = today or date.today()
    methods: dict[str, str] = {}

    tx_date: date | None = None
    raw_date = obj.get("date")
    if isinstance(raw_date, str):
        tx_date = parse_date_text(raw_date)
    if tx_date is None:
        tx_date, methods["date"] = today, DEFAULT
    else:
        methods["date"] = method

    total = _coerce_total(obj.get("total"))
    if total is None or not _in_range(total):
        total, methods["total"] = 0, DEFAULT
    else:
        methods["total"] = method

    vendor = _clean_str(obj.get("vendor"))
    if vendor:
        methods["vendor"] = method
    else:
        vendor, methods["vendor"] = DEFAULT_VENDOR, DEFAULT

    category = _clean_str(obj.get("category"))
    if category:
        methods["category"] = method
    else:
        category, methods["category"] = DEFAULT_CATEGORY, DEFAULT

    description = _clean_str(obj.get("description"))
    if description:
        methods["description"] = method
    else:
        description, methods["description"] = DEFAULT_DESCRIPTION, DEFAULT

    tax = _coerce_total(obj.get("taxAmount", obj.get("tax_amount")))
    if tax is not None and tax < max(total, 1):
        methods["tax_amount"] = method
    else:
        tax, methods["tax_amount"] = estimate_tax(total, rate=iva_rate), ESTIMATED

    return Extraction(
        fields=ExtractedFields(
            date=tx_date,
            total=total,
            vendor=vendor[:200],
            category=category[:100],
            tax_amount=tax,
            description=description,
        ),
        methods=methods,
    )


def placeholder_extraction(*, today: date | None = None) -> Extraction:
    """Record shown to the user when the OCR service could not be used."""
    fields = ExtractedFields(
        date=today or date.today(),
        total=0,
        vendor=ERROR_VENDOR,
        category=DEFAULT_CATEGORY,
        tax_amount=0,
        description=ERROR_DESCRIPTION,
    )
    return Extraction(
        fields=fields,
        methods={name: DEFAULT for name in ("date", "total", "vendor", "category", "description")}
        | {"tax_amount": ESTIMATED},
    )

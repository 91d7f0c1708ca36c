from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel, Field

from boletas.modules.alerts.schemas import AlertNotificationOut

# Amounts arrive as numbers or as printed strings ("$ 44.995"); the service
# resolves them to whole pesos.
Amount = int | float | str


class ExtractedFieldsOut(BaseModel):
    date: dt.date
    total: int
    vendor: str
    category: str
    tax_amount: int
    description: str


class ValidationOut(BaseModel):
    is_valid: bool
    issues: list[str]
    confidence: dict[str, float]


class AnalysisOut(BaseModel):
    upload_id: str | None
    client_id: str | None
    filename: str | None
    success: bool
    message: str | None
    provider: str | None
    fields: ExtractedFieldsOut
    methods: dict[str, str]
    validation: ValidationOut
    text_excerpt: str | None


class BatchAnalysisOut(BaseModel):
    results: dict[str, AnalysisOut]


class ReceiptCreate(BaseModel):
    receipt_id: str | None = Field(default=None, max_length=40)
    date: dt.date
    total: Amount
    tax_amount: Amount | None = None
    vendor: str = Field(min_length=1, max_length=200)
    category: str | None = None
    company_id: uuid.UUID | None = None
    description: str | None = None
    upload_id: str | None = None
    raw_text_excerpt: str | None = None
    extraction_confidence: float | None = Field(default=None, ge=0, le=1)


class ReceiptUpdate(BaseModel):
    receipt_id: str | None = Field(default=None, max_length=40)
    date: dt.date | None = None
    total: Amount | None = None
    tax_amount: Amount | None = None
    vendor: str | None = Field(default=None, min_length=1, max_length=200)
    category: str | None = None
    company_id: uuid.UUID | None = None
    description: str | None = None


class ReceiptOut(BaseModel):
    id: uuid.UUID
    receipt_id: str
    user_id: uuid.UUID
    company_id: uuid.UUID | None
    company_name: str | None
    category_id: uuid.UUID | None
    category_name: str | None
    date: dt.date
    total: int
    tax_amount: int
    vendor: str
    description: str | None
    has_image: bool
    extraction_confidence: float | None
    created_at: dt.datetime
    updated_at: dt.datetime


class ReceiptSavedOut(BaseModel):
    receipt: ReceiptOut
    alerts: list[AlertNotificationOut]


class CategoryTotal(BaseModel):
    category: str
    count: int
    total: int


class MonthTotal(BaseModel):
    month: str
    count: int
    total: int


class ReceiptSummaryOut(BaseModel):
    count: int
    total: int
    tax_total: int
    by_category: list[CategoryTotal]
    by_month: list[MonthTotal]


class ReceiptExportIn(BaseModel):
    receipt_ids: list[uuid.UUID]

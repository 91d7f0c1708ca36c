"""
Model registry.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Import User first - other models have foreign keys to it
from boletas.modules.identity.models import User  # noqa: F401

from boletas.modules.alerts.models import AlertNotification, AlertRule  # noqa: F401
from boletas.modules.categories.models import Category  # noqa: F401
from boletas.modules.companies.models import Company  # noqa: F401
from boletas.modules.documents.models import Document, DocumentCategory  # noqa: F401
from boletas.modules.extraction.models import ExtractionCache  # noqa: F401
from boletas.modules.messages.models import UserMessage  # noqa: F401
from boletas.modules.receipts.models import Receipt  # noqa: F401

from __future__ import annotations

from sqlalchemy import select

import boletas.models  # noqa: F401
from boletas.core.config import settings
from boletas.core.db import SessionLocal, engine
from boletas.core.logging import get_logger, log_event
from boletas.core.models import Base
from boletas.core.security import hash_password
from boletas.modules.categories.service import seed_categories
from boletas.modules.identity.models import User, UserRole

logger = get_logger(__name__)


def bootstrap() -> None:
    Base.metadata.create_all(engine)

    with SessionLocal() as session:
        created = seed_categories(session, names=settings.default_categories)
        if created:
            log_event(logger, "bootstrap.categories.seeded", created=created)

    if not settings.init_admin_email or not settings.init_admin_password:
        return

    # Support comma-separated list of admin emails
    admin_emails = [e.strip().lower() for e in settings.init_admin_email.split(",") if e.strip()]
    if not admin_emails:
        return

    with SessionLocal() as session:
        for email in admin_emails:
            existing = session.scalar(select(User).where(User.email == email))
            if existing:
                # Ensure existing user is admin
                if existing.role != UserRole.ADMIN:
                    existing.role = UserRole.ADMIN
                    session.add(existing)
                continue
            session.add(
                User(
                    email=email,
                    full_name="Administrador",
                    password_hash=hash_password(settings.init_admin_password),
                    role=UserRole.ADMIN,
                    is_active=True,
                )
            )
            log_event(logger, "bootstrap.admin.created", email=email)
        session.commit()

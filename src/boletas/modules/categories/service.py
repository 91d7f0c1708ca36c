from __future__ import annotations

import uuid
from collections.abc import Iterable

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from boletas.modules.categories.models import Category
from boletas.modules.receipts.models import Receipt


def list_categories(session: Session, *, include_inactive: bool = False) -> list[Category]:
    stmt = select(Category).order_by(Category.name)
    if not include_inactive:
        stmt = stmt.where(Category.is_active.is_(True))
    return list(session.scalars(stmt))


def get_category(session: Session, *, category_id: uuid.UUID) -> Category:
    category = session.scalar(select(Category).where(Category.id == category_id))
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


def find_category(session: Session, *, name: str) -> Category | None:
    return session.scalar(select(Category).where(func.lower(Category.name) == name.strip().lower()))


def resolve_category(session: Session, *, name: str | None) -> Category | None:
    """Find a category by case-insensitive name, creating it when missing. Does not commit."""
    if not name or not name.strip():
        return None
    category = find_category(session, name=name)
    if category:
        return category
    category = Category(name=name.strip(), description=None, is_active=True)
    session.add(category)
    session.flush()
    return category


def seed_categories(session: Session, *, names: Iterable[str]) -> int:
    created = 0
    for name in names:
        if find_category(session, name=name):
            continue
        session.add(Category(name=name, description=None, is_active=True))
        created += 1
    session.commit()
    return created


def create_category(
    session: Session, *, name: str, description: str | None, is_active: bool = True
) -> Category:
    if find_category(session, name=name):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Category already exists")
    category = Category(name=name.strip(), description=description, is_active=is_active)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def update_category(session: Session, *, category: Category, changes: dict) -> Category:
    if "name" in changes:
        name = str(changes["name"] or "").strip()
        other = find_category(session, name=name)
        if other and other.id != category.id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail="Category already exists"
            )
        category.name = name
    if "description" in changes:
        category.description = changes["description"]
    if "is_active" in changes:
        category.is_active = bool(changes["is_active"])
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def delete_category(session: Session, *, category: Category) -> None:
    in_use = session.scalar(
        select(func.count(Receipt.id)).where(Receipt.category_id == category.id)
    )
    if in_use:
        # Keep history intact; hide it from pickers instead.
        category.is_active = False
        session.add(category)
    else:
        session.delete(category)
    session.commit()

"""
services/category_service.py — Per-user expense categories.

A category belongs to the user who created it. Only that user can see,
rename or delete it, and only that user can attach it to an expense.
Deleting a category leaves its expenses uncategorised (FK ON DELETE SET NULL).
"""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.category import Category
from groupledger.app.models.expense import Expense

# Suggestions offered to new users; nothing is created until they pick one.
DEFAULT_CATEGORIES: tuple[dict, ...] = (
    {"name": "Food & Dining", "description": "Restaurants, groceries, food delivery"},
    {"name": "Transportation", "description": "Gas, public transport, rideshare"},
    {"name": "Entertainment", "description": "Movies, games, subscriptions"},
    {"name": "Shopping", "description": "Clothing, electronics, general shopping"},
    {"name": "Travel", "description": "Hotels, flights, vacation expenses"},
    {"name": "Utilities", "description": "Electricity, water, internet bills"},
    {"name": "Healthcare", "description": "Medical expenses, pharmacy"},
    {"name": "Education", "description": "Books, courses, school expenses"},
)


def _build_category_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "created_at": category.created_at.isoformat() if category.created_at else None,
    }


def get_owned_category(category_id: int, user_id: int, session: Session) -> Category:
    """
    Someone else's category is reported as not found, the same as a
    missing one.
    """
    category = session.get(Category, category_id)
    if category is None or category.created_by_user_id != user_id:
        raise AppError(
            ErrorCode.CATEGORY_NOT_FOUND,
            f"Category {category_id} not found.",
            404,
            field="category_id",
        )
    return category


def _ensure_name_free(
        name: str,
        user_id: int,
        session: Session,
        exclude_id: int | None = None,
) -> None:
    stmt = select(Category.id).where(
        Category.created_by_user_id == user_id,
        func.lower(Category.name) == name.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)

    if session.execute(stmt).first() is not None:
        raise AppError(
            ErrorCode.DUPLICATE_CATEGORY,
            f"You already have a category named '{name}'.",
            409,
            field="name",
        )


def create_category(
        name: str,
        user_id: int,
        session: Session,
        description: str | None = None,
) -> dict:
    name = name.strip()
    _ensure_name_free(name, user_id, session)

    category = Category(name=name, description=description, created_by_user_id=user_id)
    session.add(category)
    session.flush()
    session.refresh(category)
    return _build_category_dict(category)


def list_categories(user_id: int, session: Session) -> list[dict]:
    stmt = (
        select(Category)
        .where(Category.created_by_user_id == user_id)
        .order_by(func.lower(Category.name).asc())
    )
    return [_build_category_dict(c) for c in session.execute(stmt).scalars().all()]


def get_category(category_id: int, user_id: int, session: Session) -> dict:
    return _build_category_dict(get_owned_category(category_id, user_id, session))


def update_category(category_id: int, user_id: int, data: dict, session: Session) -> dict:
    category = get_owned_category(category_id, user_id, session)

    if "name" in data:
        name = data["name"].strip()
        _ensure_name_free(name, user_id, session, exclude_id=category.id)
        category.name = name
    if "description" in data:
        category.description = data["description"]

    session.flush()
    return _build_category_dict(category)


def delete_category(category_id: int, user_id: int, session: Session) -> None:
    category = get_owned_category(category_id, user_id, session)

    # ON DELETE SET NULL is not enforced by SQLite without PRAGMA foreign_keys.
    session.execute(
        update(Expense).where(Expense.category_id == category.id).values(category_id=None)
    )
    session.delete(category)
    session.flush()


def default_categories(user_id: int, session: Session) -> list[dict]:
    """
    The suggested categories, each flagged with whether the user already
    has one by that name (case-insensitive).
    """
    owned = set(session.execute(
        select(func.lower(Category.name)).where(Category.created_by_user_id == user_id)
    ).scalars().all())
    return [
        {**suggestion, "exists": suggestion["name"].lower() in owned}
        for suggestion in DEFAULT_CATEGORIES
    ]

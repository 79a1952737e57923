"""
Unit tests for category_service.default_categories with a mocked session.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from groupledger.app.services import category_service


def test_defaults_flag_owned_names_case_insensitively():
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = ["travel", "rent"]

    result = category_service.default_categories(user_id=1, session=session)

    assert [d["name"] for d in result] == [d["name"] for d in category_service.DEFAULT_CATEGORIES]
    flagged = [d["name"] for d in result if d["exists"]]
    assert flagged == ["Travel"]
    session.add.assert_not_called()


def test_defaults_for_user_without_categories():
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = []

    result = category_service.default_categories(user_id=1, session=session)

    assert len(result) == 8
    assert all(d["exists"] is False for d in result)
    assert all(d["description"] for d in result)

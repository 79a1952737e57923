"""
tests/integration/test_exports.py — CSV downloads under /export.

Successful exports are text/csv attachments; errors keep the JSON body.
"""

from __future__ import annotations

import csv
import io

from groupledger.app.services.export_service import (
    GROUP_DETAILED_COLUMNS,
    GROUP_SUMMARY_COLUMNS,
    MY_DETAILED_COLUMNS,
    MY_SUMMARY_COLUMNS,
    SETTLEMENT_COLUMNS,
)

from .conftest import auth_headers, make_expense, register, settle, setup_trio

BASE = "/api/v1/export"


def _rows(resp) -> list[list[str]]:
    return list(csv.reader(io.StringIO(resp.get_data(as_text=True))))


def _assert_csv(resp, filename_prefix: str) -> None:
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    disposition = resp.headers["Content-Disposition"]
    assert disposition.startswith(f'attachment; filename="{filename_prefix}')
    assert disposition.endswith('.csv"')


class TestExportOptions:

    def test_lists_formats_and_columns(self, client):
        alice = register(client, "Alice")
        resp = client.get(f"{BASE}/options", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["formats"] == ["detailed", "summary"]
        assert data["exports"][0]["columns"]["detailed"] == GROUP_DETAILED_COLUMNS


class TestGroupExports:

    def test_detailed(self, client):
        alice, bob, carol, group = setup_trio(client)
        make_expense(
            client, alice["access_token"], group["id"], "30.00",
            split_mode="equal", description="Pizza", tags=["food", "friday"],
        )

        resp = client.get(f"{BASE}/groups/{group['id']}/expenses", headers=auth_headers(bob["access_token"]))
        _assert_csv(resp, f"group_{group['id']}_expenses_detailed_")

        rows = _rows(resp)
        assert rows[0] == GROUP_DETAILED_COLUMNS
        assert len(rows) == 2
        record = dict(zip(rows[0], rows[1]))
        assert record["Description"] == "Pizza"
        assert record["Amount"] == "30.00"
        assert record["Paid By"] == "Alice"
        assert record["Category"] == "Uncategorized"
        assert record["Tags"] == "food, friday"
        assert "Bob: 10.00" in record["Split Between"]

    def test_summary_groups_by_category(self, client):
        alice, bob, carol, group = setup_trio(client)
        food = client.post(
            "/api/v1/categories/", json={"name": "Food"}, headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]
        make_expense(client, alice["access_token"], group["id"], "30.00", split_mode="equal", category_id=food["id"])
        make_expense(client, alice["access_token"], group["id"], "10.00", split_mode="equal", category_id=food["id"])
        make_expense(client, alice["access_token"], group["id"], "5.00", split_mode="equal")

        resp = client.get(
            f"{BASE}/groups/{group['id']}/expenses",
            query_string={"format": "summary"},
            headers=auth_headers(alice["access_token"]),
        )
        _assert_csv(resp, f"group_{group['id']}_expenses_summary_")
        assert _rows(resp) == [
            GROUP_SUMMARY_COLUMNS,
            ["Food", "40.00", "2", "20.00"],
            ["Uncategorized", "5.00", "1", "5.00"],
        ]

    def test_deleted_expenses_are_left_out(self, client):
        alice, bob, carol, group = setup_trio(client)
        expense = make_expense(client, alice["access_token"], group["id"], "30.00", split_mode="equal").get_json()["data"]
        client.delete(f"/api/v1/expenses/{expense['id']}", headers=auth_headers(alice["access_token"]))

        resp = client.get(f"{BASE}/groups/{group['id']}/expenses", headers=auth_headers(alice["access_token"]))
        assert _rows(resp) == [GROUP_DETAILED_COLUMNS]

    def test_settlements(self, client):
        alice, bob, carol, group = setup_trio(client)
        make_expense(client, alice["access_token"], group["id"], "30.00", split_mode="equal")
        settle(client, bob["access_token"], group["id"], alice["user"]["id"], "10.00", note="cash")

        resp = client.get(f"{BASE}/groups/{group['id']}/settlements", headers=auth_headers(carol["access_token"]))
        _assert_csv(resp, f"group_{group['id']}_settlements_")
        rows = _rows(resp)
        assert rows[0] == SETTLEMENT_COLUMNS
        assert rows[1][1:] == ["Bob", "Alice", "10.00", "cash"]

    def test_bad_format(self, client):
        alice, bob, carol, group = setup_trio(client)
        resp = client.get(
            f"{BASE}/groups/{group['id']}/expenses",
            query_string={"format": "xlsx"},
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_EXPORT_FORMAT"

    def test_non_member(self, client):
        alice, bob, carol, group = setup_trio(client)
        dave = register(client, "Dave")
        resp = client.get(f"{BASE}/groups/{group['id']}/expenses", headers=auth_headers(dave["access_token"]))
        assert resp.status_code == 403
        resp = client.get(f"{BASE}/groups/{group['id']}/settlements", headers=auth_headers(dave["access_token"]))
        assert resp.status_code == 403


class TestMyExports:

    def test_detailed_status(self, client):
        alice, bob, carol, group = setup_trio(client)
        a, b = alice["user"]["id"], bob["user"]["id"]
        first = make_expense(
            client, alice["access_token"], group["id"], "20.00", description="Taxi",
            splits=[{"user_id": a, "share": "10.00"}, {"user_id": b, "share": "10.00"}],
        ).get_json()["data"]
        make_expense(
            client, alice["access_token"], group["id"], "8.00", description="Coffee",
            splits=[{"user_id": a, "share": "4.00"}, {"user_id": b, "share": "4.00"}],
        )
        make_expense(
            client, bob["access_token"], group["id"], "6.00", description="Snacks",
            splits=[{"user_id": a, "share": "3.00"}, {"user_id": b, "share": "3.00"}],
        )
        settle(client, bob["access_token"], group["id"], a, "10.00", expense_id=first["id"])

        resp = client.get(f"{BASE}/expenses/mine", headers=auth_headers(bob["access_token"]))
        _assert_csv(resp, "my_expenses_detailed_")
        rows = _rows(resp)
        assert rows[0] == MY_DETAILED_COLUMNS
        status = {r[1]: (r[6], r[7]) for r in rows[1:]}
        assert status == {
            "Taxi": ("10.00", "Settled"),
            "Coffee": ("4.00", "Outstanding"),
            "Snacks": ("3.00", "Paid"),
        }

    def test_not_involved_is_left_out(self, client):
        alice, bob, carol, group = setup_trio(client)
        a, b = alice["user"]["id"], bob["user"]["id"]
        make_expense(
            client, alice["access_token"], group["id"], "20.00",
            splits=[{"user_id": a, "share": "10.00"}, {"user_id": b, "share": "10.00"}],
        )
        resp = client.get(f"{BASE}/expenses/mine", headers=auth_headers(carol["access_token"]))
        assert _rows(resp) == [MY_DETAILED_COLUMNS]

    def test_summary_per_group(self, client):
        alice, bob, carol, group = setup_trio(client)
        make_expense(client, alice["access_token"], group["id"], "90.00", split_mode="equal")

        resp = client.get(
            f"{BASE}/expenses/mine",
            query_string={"format": "summary"},
            headers=auth_headers(bob["access_token"]),
        )
        _assert_csv(resp, "my_expenses_summary_")
        assert _rows(resp) == [MY_SUMMARY_COLUMNS, ["Test Group", "0.00", "30.00", "-30.00"]]

    def test_requires_auth(self, client):
        assert client.get(f"{BASE}/expenses/mine").status_code == 401

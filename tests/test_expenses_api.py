from __future__ import annotations

from datetime import date

from salesdocs.extensions import db
from salesdocs.models import AuditLog, Expense


def test_create_and_list_expenses(org_client) -> None:
    resp = org_client.post(
        "/api/expenses",
        json={"description": "Printer toner", "amount": "40", "category": "Office", "date": "2024-03-02"},
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["amount"] == "40.00"
    assert body["date"] == "2024-03-02"
    assert body["receipt_url"] is None

    listed = org_client.get("/api/expenses").get_json()
    assert [e["description"] for e in listed] == ["Printer toner"]


def test_expense_date_defaults_to_today(org_client) -> None:
    body = org_client.post(
        "/api/expenses", json={"description": "Taxi", "amount": "12.50", "category": "Travel"}
    ).get_json()
    assert body["date"] == date.today().isoformat()


def test_expense_validation(org_client) -> None:
    resp = org_client.post("/api/expenses", json={"description": "", "amount": "-5", "date": "yesterday"})
    assert resp.status_code == 400
    assert set(resp.get_json()["errors"]) == {"description", "amount", "category", "date"}

    resp = org_client.post("/api/expenses", json={"description": "Fuel", "category": "Travel", "amount": "1.005"})
    assert resp.get_json()["errors"] == {"amount": "at most 2 decimal places"}
    assert org_client.get("/api/expenses").get_json() == []


def test_expenses_are_tenant_scoped(org_client, individual_client) -> None:
    mine = org_client.post(
        "/api/expenses", json={"description": "Rent", "amount": "900", "category": "Premises"}
    ).get_json()
    individual_client.post("/api/expenses", json={"description": "Books", "amount": "30", "category": "Study"})

    assert [e["description"] for e in org_client.get("/api/expenses").get_json()] == ["Rent"]
    assert individual_client.delete(f"/api/expenses/{mine['id']}").status_code == 404
    assert len(org_client.get("/api/expenses").get_json()) == 1


def test_delete_expense_is_audited(app, org_client) -> None:
    created = org_client.post(
        "/api/expenses", json={"description": "Courier", "amount": "15", "category": "Shipping"}
    ).get_json()
    assert org_client.delete(f"/api/expenses/{created['id']}").status_code == 200
    assert org_client.get("/api/expenses").get_json() == []

    with app.app_context():
        assert db.session.query(Expense).count() == 0
        actions = [a.action for a in AuditLog.query.filter_by(entity_type="Expense").order_by(AuditLog.id)]
        assert actions == ["CREATE", "DELETE"]


def test_dashboard_counts_only_this_months_expenses(org_client, individual_client) -> None:
    today = date.today()
    org_client.post(
        "/api/expenses",
        json={"description": "Stationery", "amount": "40", "category": "Office", "date": today.isoformat()},
    )
    org_client.post(
        "/api/expenses",
        json={"description": "Old lease", "amount": "99", "category": "Premises", "date": f"{today.year - 1}-01-01"},
    )
    individual_client.post("/api/expenses", json={"description": "Other", "amount": "7", "category": "Misc"})

    stats = org_client.get("/api/dashboard/stats").get_json()
    assert stats["monthly_expenses"] == "40.00"

from __future__ import annotations

from salesdocs.extensions import db
from salesdocs.models import AuditLog, SalesDocument

from .conftest import PASSWORD, register

EXAMPLE_LINE = {"qty": 10, "unitPrice": "91.30", "discountPercent": 0, "vatPercent": 15}
TWO_LINES = [
    {"quantity": 2, "unit_price": 100, "discount_percent": 10, "vat_percent": 15},
    {"quantity": 1, "unit_price": 50, "discount_percent": 0, "vat_percent": 15},
]


def _create(client, slug, items=None, **fields):
    payload = {"items": items or [EXAMPLE_LINE]}
    payload.update(fields)
    return client.post(f"/api/{slug}", json=payload)


def test_requires_login(anon_client) -> None:
    resp = anon_client.get("/api/quotations")
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Authentication required"

    resp = anon_client.post("/api/invoices", json={"items": [EXAMPLE_LINE]})
    assert resp.status_code == 401


def test_create_quotation_computes_totals(org_client) -> None:
    resp = _create(org_client, "quotations", status="accepted", subtotal="1", total_amount="999")
    assert resp.status_code == 201
    body = resp.get_json()

    assert body["reference_id"] == "QUO00001"
    assert body["kind"] == "quotation"
    assert body["status"] == "draft"
    assert body["subtotal"] == "913.00"
    assert body["discount"] == "0.00"
    assert body["vat_amount"] == "136.95"
    assert body["total_amount"] == "1049.95"
    assert body["items"][0]["vat_value"] == "136.95"
    assert body["items"][0]["amount"] == "1049.95"


def test_line_discount_rolls_into_quotation_discount(org_client) -> None:
    body = _create(org_client, "quotations", items=TWO_LINES).get_json()
    assert body["subtotal"] == "250.00"
    assert body["discount"] == "20.00"
    assert body["vat_amount"] == "34.50"
    assert body["total_amount"] == "264.50"
    assert [item["amount"] for item in body["items"]] == ["207.00", "57.50"]


def test_each_tenant_starts_its_own_sequence(app, org_client, individual_client) -> None:
    other_org = app.test_client()
    assert register(other_org, "organization", "second@acme.test", company_name="Second").status_code == 201

    for client in (org_client, individual_client, other_org):
        assert _create(client, "quotations").get_json()["reference_id"] == "QUO00001"

    assert _create(org_client, "quotations").get_json()["reference_id"] == "QUO00002"
    assert _create(individual_client, "proforma-invoices").get_json()["reference_id"] == "PROFORMA0001"
    assert _create(individual_client, "invoices").get_json()["reference_id"] == "INV001"


def test_next_reference_preview(org_client) -> None:
    assert org_client.get("/api/invoices/next-reference").get_json() == {"reference": "INV001"}
    _create(org_client, "invoices")
    assert org_client.get("/api/invoices/next-reference").get_json() == {"reference": "INV002"}


def test_invoice_reference_start_is_configurable(app, org_client) -> None:
    app.config["INVOICE_REFERENCE_START"] = 50
    assert _create(org_client, "invoices").get_json()["reference_id"] == "INV050"
    assert _create(org_client, "invoices").get_json()["reference_id"] == "INV051"


def test_invoice_applies_document_discount_only(org_client) -> None:
    items = [{"quantity": 1, "unit_price": 200, "vat_percent": 15}, {"quantity": 1, "unit_price": 50}]
    body = _create(org_client, "invoices", items=items, discount_percent=10).get_json()
    assert body["subtotal"] == "250.00"
    assert body["discount"] == "25.00"
    assert body["vat_amount"] == "37.50"
    assert body["total_amount"] == "262.50"


def test_invoice_rejects_line_discount(org_client) -> None:
    resp = _create(org_client, "invoices", items=TWO_LINES)
    assert resp.status_code == 400
    assert "items[0].discount_percent" in resp.get_json()["errors"]


def test_validation_errors_are_reported_per_field(org_client) -> None:
    resp = org_client.post("/api/quotations", json={"items": [{"quantity": "x", "unit_price": 1}]})
    assert resp.status_code == 400
    assert resp.get_json() == {
        "message": "Validation failed",
        "errors": {"items[0].quantity": "not a number"},
    }


def test_update_recomputes_totals_and_keeps_reference(org_client) -> None:
    created = _create(org_client, "quotations").get_json()

    resp = org_client.put(
        f"/api/quotations/{created['id']}",
        json={"items": TWO_LINES, "reference_id": "QUO99999", "status": "sent"},
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["reference_id"] == "QUO00001"
    assert body["status"] == "sent"
    assert body["total_amount"] == "264.50"
    assert len(body["items"]) == 2


def test_update_with_empty_items_is_rejected(org_client) -> None:
    created = _create(org_client, "quotations").get_json()
    resp = org_client.patch(f"/api/quotations/{created['id']}", json={"items": []})
    assert resp.status_code == 400
    assert org_client.get(f"/api/quotations/{created['id']}").get_json()["total_amount"] == "1049.95"


def test_other_tenant_documents_are_not_found(org_client, individual_client) -> None:
    created = _create(org_client, "quotations").get_json()
    url = f"/api/quotations/{created['id']}"

    assert individual_client.get(url).status_code == 404
    assert individual_client.put(url, json={"notes": "x"}).status_code == 404
    assert individual_client.delete(url).status_code == 404
    assert individual_client.get("/api/quotations").get_json() == []

    assert org_client.get(url).status_code == 200


def test_kind_mismatch_is_not_found(org_client) -> None:
    created = _create(org_client, "quotations").get_json()
    assert org_client.get(f"/api/invoices/{created['id']}").status_code == 404


def test_delete_document(app, org_client) -> None:
    created = _create(org_client, "proforma-invoices").get_json()

    resp = org_client.delete(f"/api/proforma-invoices/{created['id']}")
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Proforma invoice deleted successfully"}
    assert org_client.get(f"/api/proforma-invoices/{created['id']}").status_code == 404

    with app.app_context():
        actions = [entry.action for entry in AuditLog.query.order_by(AuditLog.id).all()]
    assert actions == ["CREATE", "DELETE"]


def test_list_filters(org_client) -> None:
    _create(org_client, "quotations", issue_date="2024-01-10")
    _create(org_client, "quotations", items=TWO_LINES, issue_date="2024-03-01")

    in_range = org_client.get("/api/quotations?issue_date_from=2024-02-01").get_json()
    assert [doc["reference_id"] for doc in in_range] == ["QUO00002"]

    cheap = org_client.get("/api/quotations?max_amount=500").get_json()
    assert [doc["total_amount"] for doc in cheap] == ["264.50"]

    bad = org_client.get("/api/quotations?min_amount=lots")
    assert bad.status_code == 400
    assert "min_amount" in bad.get_json()["errors"]


def test_customer_must_belong_to_tenant(org_client, individual_client) -> None:
    customer = individual_client.post("/api/customers", json={"customer_name": "Theirs"}).get_json()
    resp = _create(org_client, "quotations", customer_id=customer["id"])
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == {"customer_id": "unknown customer"}


def test_calculate_preview(org_client) -> None:
    resp = org_client.post("/api/calculate", json={"kind": "quotation", "items": TWO_LINES})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["total_amount"] == "264.50"
    assert body["items"] == [
        {"vat_value": "27.00", "amount": "207.00"},
        {"vat_value": "7.50", "amount": "57.50"},
    ]

    bad = org_client.post("/api/calculate", json={"kind": "receipt", "items": TWO_LINES})
    assert bad.status_code == 400


def test_dashboard_stats(org_client) -> None:
    paid = _create(org_client, "invoices").get_json()
    _create(org_client, "invoices")
    _create(org_client, "quotations")
    org_client.patch(f"/api/invoices/{paid['id']}", json={"status": "paid"})

    stats = org_client.get("/api/dashboard/stats").get_json()
    assert stats["total_revenue"] == "1049.95"
    assert stats["active_invoices"] == 1
    assert stats["invoices"] == 2
    assert stats["quotations"] == 1
    assert stats["proforma_invoices"] == 0


def test_documents_are_stamped_with_one_owner(app, individual_client) -> None:
    _create(individual_client, "quotations")
    with app.app_context():
        document = db.session.query(SalesDocument).one()
        assert document.individual_user_id is not None
        assert document.company_user_id is None


def test_login_logout_cycle(app, anon_client) -> None:
    register(anon_client, "individual", "cycle@example.test")
    assert anon_client.post("/auth/logout").status_code == 200
    assert anon_client.get("/api/quotations").status_code == 401

    bad = anon_client.post("/auth/login", json={"email": "cycle@example.test", "password": "nope"})
    assert bad.status_code == 401

    ok = anon_client.post("/auth/login", json={"email": "cycle@example.test", "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.get_json()["account_type"] == "individual"
    assert anon_client.get("/api/quotations").status_code == 200


def test_duplicate_registration_conflicts(anon_client) -> None:
    assert register(anon_client, "organization", "dup@acme.test").status_code == 201
    assert register(anon_client, "organization", "dup@acme.test").status_code == 409


def test_csrf_token_is_required_when_enabled(app) -> None:
    app.config["WTF_CSRF_ENABLED"] = True
    client = app.test_client()

    payload = {"account_type": "individual", "email": "csrf@example.test", "password": PASSWORD}
    assert client.post("/auth/register", json=payload).status_code == 400

    token = client.get("/auth/csrf-token").get_json()["csrf_token"]
    resp = client.post("/auth/register", json=payload, headers={"X-CSRFToken": token})
    assert resp.status_code == 201


def test_fractional_quantity_is_accepted(org_client) -> None:
    resp = _create(org_client, "quotations", items=[{"quantity": "0.125", "unit_price": 80}])
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["items"][0]["quantity"] == "0.125"
    assert body["subtotal"] == "10.00"
    assert body["vat_amount"] == "1.50"
    assert body["total_amount"] == "11.50"


def test_document_vat_change_reaches_lines_without_own_vat(org_client) -> None:
    created = _create(
        org_client, "quotations", items=[{"quantity": 1, "unit_price": 100}], vat_percent=10
    ).get_json()
    assert created["vat_amount"] == "10.00"
    assert created["items"][0]["vat_percent"] is None
    assert created["items"][0]["applied_vat_percent"] == "10.00"

    resp = org_client.patch(f"/api/quotations/{created['id']}", json={"vat_percent": 5})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["vat_percent"] == "5.00"
    assert body["vat_amount"] == "5.00"
    assert body["total_amount"] == "105.00"
    assert body["items"][0]["vat_percent"] is None
    assert body["items"][0]["applied_vat_percent"] == "5.00"


def test_partial_update_checks_due_date_against_stored_issue_date(org_client) -> None:
    created = _create(org_client, "quotations", issue_date="2024-05-10").get_json()

    resp = org_client.patch(f"/api/quotations/{created['id']}", json={"due_date": "2024-05-01"})
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == {"due_date": "must not be before issue_date"}
    assert org_client.get(f"/api/quotations/{created['id']}").get_json()["due_date"] is None

from __future__ import annotations

from salesdocs.extensions import get_list_cache
from salesdocs.seed import DEFAULT_UNITS
from salesdocs.tenancy import TenantScope


def test_registration_seeds_default_units(org_client) -> None:
    units = org_client.get("/api/units").get_json()
    assert sorted(u["name"] for u in units) == sorted(name for name, _, _ in DEFAULT_UNITS)
    assert all(u["product_count"] == 0 for u in units)


def test_customer_codes_start_at_22(org_client) -> None:
    assert org_client.get("/api/customers/next-code").get_json() == {"code": "22"}

    first = org_client.post("/api/customers", json={"customer_name": "Al Noor"}).get_json()
    assert first["code"] == "22"
    assert first["account"] == "Accounts Receivables"

    org_client.post("/api/customers", json={"customer_name": "Legacy", "code": "LEG-1"})
    assert org_client.get("/api/customers/next-code").get_json() == {"code": "23"}


def test_customer_crud_and_list_invalidation(org_client) -> None:
    assert org_client.get("/api/customers").get_json() == []

    created = org_client.post(
        "/api/customers", json={"customer_name": "Blue Sky", "opening_balance": "100.50"}
    ).get_json()
    listed = org_client.get("/api/customers").get_json()
    assert [c["customer_name"] for c in listed] == ["Blue Sky"]

    resp = org_client.patch(f"/api/customers/{created['id']}", json={"city": "Riyadh"})
    assert resp.get_json()["city"] == "Riyadh"
    assert org_client.get("/api/customers").get_json()[0]["city"] == "Riyadh"

    assert org_client.delete(f"/api/customers/{created['id']}").status_code == 200
    assert org_client.get("/api/customers").get_json() == []


def test_customer_validation_and_conflict(org_client) -> None:
    resp = org_client.post("/api/customers", json={"customer_name": "", "status": "gone"})
    assert resp.status_code == 400
    assert set(resp.get_json()["errors"]) == {"customer_name", "status"}

    org_client.post("/api/customers", json={"customer_name": "A", "code": "X1"})
    dup = org_client.post("/api/customers", json={"customer_name": "B", "code": "X1"})
    assert dup.status_code == 409


def test_total_outstanding(org_client, individual_client) -> None:
    org_client.post("/api/customers", json={"customer_name": "A", "opening_balance": "100.50"})
    org_client.post("/api/customers", json={"customer_name": "B", "opening_balance": "20"})
    individual_client.post("/api/customers", json={"customer_name": "C", "opening_balance": "999"})

    assert org_client.get("/api/customers/total-outstanding").get_json() == {"total_outstanding": "120.50"}


def test_customers_are_tenant_scoped(org_client, individual_client) -> None:
    created = org_client.post("/api/customers", json={"customer_name": "Mine"}).get_json()

    assert individual_client.get(f"/api/customers/{created['id']}").status_code == 404
    assert individual_client.delete(f"/api/customers/{created['id']}").status_code == 404
    assert individual_client.get("/api/customers").get_json() == []
    # Same code sequence for both tenants.
    assert individual_client.post("/api/customers", json={"customer_name": "Theirs"}).get_json()["code"] == "22"


def test_deleting_customer_unlinks_documents(org_client) -> None:
    customer = org_client.post("/api/customers", json={"customer_name": "Gone Soon"}).get_json()
    doc = org_client.post(
        "/api/quotations",
        json={"customer_id": customer["id"], "items": [{"quantity": 1, "unit_price": 10}]},
    ).get_json()
    assert doc["customer_name"] == "Gone Soon"

    org_client.delete(f"/api/customers/{customer['id']}")

    reloaded = org_client.get(f"/api/quotations/{doc['id']}").get_json()
    assert reloaded["customer_id"] is None
    assert reloaded["total_amount"] == "11.50"


def test_product_codes_and_unit_counts(org_client) -> None:
    assert org_client.get("/api/products/next-code").get_json() == {"product_code": "Prod-001"}

    product = org_client.post(
        "/api/products",
        json={"name_english": "Copy paper", "unit": "Box", "selling_price": "12.00", "vat_percent": 120},
    ).get_json()
    assert product["product_code"] == "Prod-001"
    assert product["vat_percent"] == "100.00"
    assert org_client.get("/api/products/next-code").get_json() == {"product_code": "Prod-002"}

    units = {u["name"]: u for u in org_client.get("/api/units").get_json()}
    assert units["Box"]["product_count"] == 1

    resp = org_client.delete(f"/api/units/{units['Box']['id']}")
    assert resp.status_code == 409
    assert org_client.delete(f"/api/units/{units['Hour']['id']}").status_code == 200


def test_product_validation(org_client) -> None:
    resp = org_client.post(
        "/api/products", json={"name_english": "Bad", "buying_price": "-1", "type": "gadget", "quantity": "x"}
    )
    assert resp.status_code == 400
    assert set(resp.get_json()["errors"]) == {"buying_price", "type", "quantity"}


def test_document_lines_must_reference_own_products(org_client, individual_client) -> None:
    theirs = individual_client.post("/api/products", json={"name_english": "Theirs"}).get_json()
    resp = org_client.post(
        "/api/quotations",
        json={"items": [{"product_id": theirs["id"], "quantity": 1, "unit_price": 5}]},
    )
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == {"items[0].product_id": "unknown product"}


def test_unit_crud(org_client) -> None:
    created = org_client.post("/api/units", json={"name": "Pallet", "symbol": "plt"})
    assert created.status_code == 201

    dup = org_client.post("/api/units", json={"name": "Pallet", "symbol": "p"})
    assert dup.status_code == 409

    unit_id = created.get_json()["id"]
    updated = org_client.put(f"/api/units/{unit_id}", json={"description": "EUR pallet"})
    assert updated.get_json()["description"] == "EUR pallet"

    missing = org_client.post("/api/units", json={"name": "Crate"})
    assert missing.status_code == 400
    assert missing.get_json()["errors"] == {"symbol": "is required"}


def test_lists_are_cached_per_tenant(app, org_client) -> None:
    org_client.get("/api/units")
    with app.app_context():
        cache = get_list_cache()
        assert ("units", TenantScope(tenant_id=1, is_organization=True)) in cache
        assert ("units", TenantScope(tenant_id=1, is_organization=False)) not in cache


def test_renaming_unit_moves_its_products(org_client) -> None:
    product = org_client.post("/api/products", json={"name_english": "Envelopes", "unit": "Box"}).get_json()
    org_client.get("/api/products")
    units = {u["name"]: u for u in org_client.get("/api/units").get_json()}

    resp = org_client.patch(f"/api/units/{units['Box']['id']}", json={"name": "Carton"})
    assert resp.status_code == 200

    assert org_client.get(f"/api/products/{product['id']}").get_json()["unit"] == "Carton"
    assert org_client.get("/api/products").get_json()[0]["unit"] == "Carton"
    units = {u["name"]: u for u in org_client.get("/api/units").get_json()}
    assert units["Carton"]["product_count"] == 1
    assert org_client.delete(f"/api/units/{units['Carton']['id']}").status_code == 409

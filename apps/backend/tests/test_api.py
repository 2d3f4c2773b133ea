from decimal import Decimal


HDFC_BODY = "Your A/c XX1234 is debited with Rs.2500.00 at SWIGGY on 12-03-2025. Avl bal is Rs.15000.00"


def _account(client, name, opening="0", type="BANK"):
    res = client.post("/api/accounts", json={"name": name, "type": type, "opening_balance": opening})
    assert res.status_code == 201
    return res.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_account_create_and_dedupe(client):
    data = {"name": "HDFC Savings", "type": "BANK", "opening_balance": "250.50"}
    r1 = client.post("/api/accounts", json=data)
    assert r1.status_code == 201
    body = r1.json()
    assert Decimal(body["balance"]) == Decimal("250.50")
    assert Decimal(body["opening_balance"]) == Decimal("250.50")
    assert body["is_active"] is True

    r2 = client.post("/api/accounts", json={**data, "name": "hdfc  savings"})
    assert r2.status_code == 400
    assert r2.json() == {
        "detail": "Account 'HDFC Savings' already exists",
        "field": "name",
        "error": "ValidationError",
    }


def test_not_found_shape(client):
    res = client.get("/api/accounts/9999")
    assert res.status_code == 404
    assert res.json() == {
        "detail": "Account 9999 not found",
        "field": "account_id",
        "error": "AccountNotFound",
        "ref": 9999,
    }


def test_balance_cannot_be_patched(client):
    acc = _account(client, "Main", "10")
    res = client.patch(f"/api/accounts/{acc['id']}", json={"balance": "99"})
    assert res.status_code == 422
    renamed = client.patch(f"/api/accounts/{acc['id']}", json={"name": "Primary"})
    assert renamed.json()["name"] == "Primary"
    assert Decimal(renamed.json()["balance"]) == 10


def test_total_balance_counts_active_accounts(client):
    a = _account(client, "Main", "100")
    _account(client, "Wallet", "25", "WALLET")
    assert Decimal(client.get("/api/accounts/total-balance").json()["total"]) == 125

    res = client.post(f"/api/accounts/{a['id']}/deactivate")
    assert res.status_code == 200
    assert res.json()["is_active"] is False
    total = client.get("/api/accounts/total-balance").json()
    assert Decimal(total["total"]) == 25
    assert total["account_count"] == 1
    assert [x["name"] for x in client.get("/api/accounts", params={"is_active": True}).json()] == ["Wallet"]


def test_reconcile_and_audit(client):
    acc = _account(client, "Main", "100")
    res = client.post(f"/api/accounts/{acc['id']}/reconcile", json={"observed_balance": "130", "on": "2025-04-01"})
    assert res.status_code == 200
    adj = res.json()
    assert adj["type"] == "INCOME"
    assert Decimal(adj["amount"]) == 30
    assert adj["date"] == "2025-04-01"

    same = client.post(f"/api/accounts/{acc['id']}/reconcile", json={"observed_balance": "130"})
    assert same.status_code == 200
    assert same.json() is None

    audit = client.get(f"/api/accounts/{acc['id']}/audit").json()
    assert audit["is_consistent"] is True
    assert Decimal(audit["expected_balance"]) == 130
    assert audit["transaction_count"] == 1


def test_delete_account_via_api(client):
    a = _account(client, "Main", "100")
    b = _account(client, "Cash", "0", "CASH")
    client.post(
        "/api/transactions",
        json={"date": "2025-01-02", "type": "TRANSFER", "account_id": a["id"], "to_account_id": b["id"], "amount": "40"},
    )
    assert client.delete(f"/api/accounts/{a['id']}").status_code == 204
    assert client.get(f"/api/accounts/{a['id']}").status_code == 404
    assert Decimal(client.get(f"/api/accounts/{b['id']}").json()["balance"]) == 0
    assert client.get("/api/transactions").json() == []


def test_transaction_validation_errors(client):
    a = _account(client, "Main")
    res = client.post(
        "/api/transactions",
        json={"date": "2025-01-02", "type": "TRANSFER", "account_id": a["id"], "to_account_id": a["id"], "amount": "5"},
    )
    assert res.status_code == 400
    assert res.json()["field"] == "to_account_id"

    res = client.post(
        "/api/transactions",
        json={"date": "2025-01-02", "type": "EXPENSE", "account_id": a["id"], "amount": "-5"},
    )
    assert res.status_code == 422

    res = client.post(
        "/api/transactions",
        json={"date": "2025-01-02", "type": "EXPENSE", "account_id": 777, "amount": "5"},
    )
    assert res.status_code == 404


def test_candidate_extract_and_approve(client):
    res = client.post("/api/candidates/extract", json={"sender": "HDFCBK", "body": HDFC_BODY})
    assert res.status_code == 200
    out = res.json()
    assert out["accepted"] is True
    assert out["threshold"] == 0.5
    cand = out["candidate"]
    assert Decimal(cand["amount"]) == 2500
    assert cand["type"] == "EXPENSE"
    assert out["summary"].startswith("Expense of ₹2500.00")

    acc = _account(client, "HDFC", "20000")
    food = next(c for c in client.get("/api/categories").json() if c["name"] == "Food & Dining")
    approved = client.post(
        "/api/candidates/approve",
        json={"candidate": cand, "account_id": acc["id"], "category_id": food["id"]},
    )
    assert approved.status_code == 201
    txn = approved.json()
    assert txn["note"] == "Swiggy"
    assert txn["date"] == "2025-03-12"
    assert Decimal(client.get(f"/api/accounts/{acc['id']}").json()["balance"]) == 17500


def test_candidate_extract_rejects_noise(client):
    res = client.post("/api/candidates/extract", json={"sender": "Mom", "body": "call me"})
    assert res.status_code == 200
    assert res.json()["candidate"] is None
    assert res.json()["accepted"] is False


def test_settings_roundtrip(client):
    res = client.get("/api/settings")
    assert res.status_code == 200
    assert res.json()["currency"] == "INR"
    assert res.json()["currency_symbol"] == "₹"

    upd = client.put("/api/settings", json={"currency": "usd", "currency_symbol": "$", "is_dark_theme": False})
    assert upd.status_code == 200
    assert upd.json()["currency"] == "USD"
    assert upd.json()["is_dark_theme"] is False

    out = client.post("/api/candidates/extract", json={"sender": "HDFCBK", "body": HDFC_BODY}).json()
    assert out["summary"].startswith("Expense of $2500.00")


def test_transaction_with_unknown_rule(client):
    a = _account(client, "Main", "50")
    res = client.post(
        "/api/transactions",
        json={"date": "2025-01-02", "type": "EXPENSE", "account_id": a["id"], "amount": "5", "recurring_rule_id": 999},
    )
    assert res.status_code == 404
    assert res.json()["field"] == "recurring_rule_id"
    assert res.json()["error"] == "RuleNotFound"
    assert Decimal(client.get(f"/api/accounts/{a['id']}").json()["balance"]) == 50

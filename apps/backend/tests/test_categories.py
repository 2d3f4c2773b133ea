from __future__ import annotations

from decimal import Decimal

import pytest

from ledger import models
from ledger.errors import ValidationError
from ledger.schemas import CategoryCreate, CategoryUpdate
from ledger.services.category_service import DEFAULT_CATEGORIES, CategoryService


class TestDefaults:
    def test_seeded_once(self, db_session):
        svc = CategoryService(db_session)
        assert svc.ensure_defaults() == []
        rows = svc.get_all()
        assert len(rows) == len(DEFAULT_CATEGORIES)
        assert all(row.is_default for row in rows)
        assert {row.name for row in svc.get_all(type=models.CategoryType.INCOME)} == {
            "Salary",
            "Reimbursement",
            "Refund",
            "Interest",
        }

    def test_defaults_are_immutable(self, db_session, category):
        svc = CategoryService(db_session)
        food = category("Food & Dining")
        with pytest.raises(ValidationError):
            svc.update(food.id, CategoryUpdate(name="Groceries"))
        with pytest.raises(ValidationError):
            svc.delete(food.id)


class TestUserCategories:
    def test_create_normalizes(self, db_session):
        row = CategoryService(db_session).create(
            CategoryCreate(name="  Pet   Care ", type=models.CategoryType.EXPENSE, color_code="#a1b2c3")
        )
        assert row.name == "Pet Care"
        assert row.color_code == "#A1B2C3"
        assert row.is_default is False

    def test_duplicate_name_within_type(self, db_session):
        svc = CategoryService(db_session)
        with pytest.raises(ValidationError) as exc:
            svc.create(CategoryCreate(name="shopping", type=models.CategoryType.EXPENSE))
        assert exc.value.field == "name"
        # same name under the other polarity is allowed
        assert svc.create(CategoryCreate(name="Shopping", type=models.CategoryType.INCOME)).id

    def test_delete_detaches_references(self, db_session, ledger, make_account):
        svc = CategoryService(db_session)
        pets = svc.create(CategoryCreate(name="Pets", type=models.CategoryType.EXPENSE))
        acc = make_account("Main", 100)
        txn = ledger.insert_transaction(
            {
                "account_id": acc.id,
                "category_id": pets.id,
                "amount": Decimal("25"),
                "type": "EXPENSE",
                "date": models.today_local(),
            }
        )
        svc.delete(pets.id)
        db_session.expire_all()
        assert ledger.get_transaction(txn.id).category_id is None
        assert ledger.audit_account(acc.id).is_consistent


def test_category_api(client):
    res = client.post("/api/categories", json={"name": "Gifts", "type": "EXPENSE", "color_code": "#00ff00"})
    assert res.status_code == 201
    cat = res.json()
    assert cat["color_code"] == "#00FF00"

    upd = client.patch(f"/api/categories/{cat['id']}", json={"name": "Presents"})
    assert upd.status_code == 200
    assert upd.json()["name"] == "Presents"

    bad = client.post("/api/categories", json={"name": "X", "type": "EXPENSE"})
    assert bad.status_code == 422

    assert client.delete(f"/api/categories/{cat['id']}").status_code == 204
    assert client.delete(f"/api/categories/{cat['id']}").status_code == 404

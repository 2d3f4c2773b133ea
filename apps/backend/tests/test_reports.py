from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger import models
from ledger.schemas import SortOption, TransactionFilter
from ledger.services.report_service import ReportService


@pytest.fixture()
def book(ledger, make_account, category):
    """Small ledger: two accounts, a handful of rows across two months."""
    bank = make_account("Bank", 1000)
    cash = make_account("Cash", 0, models.AccountType.CASH)
    food = category("Food & Dining").id
    salary = category("Salary").id

    def add(account, amount, type, on, **extra):
        return ledger.insert_transaction(
            {"account_id": account.id, "amount": Decimal(amount), "type": type, "date": on, **extra}
        )

    rows = {
        "salary": add(bank, "5000", "INCOME", date(2025, 1, 1), category_id=salary, note="January pay"),
        "lunch": add(bank, "120", "EXPENSE", date(2025, 1, 5), category_id=food, note="Lunch at cafe"),
        "atm": add(bank, "300", "TRANSFER", date(2025, 1, 7), to_account_id=cash.id, note="ATM"),
        "snack": add(cash, "40", "EXPENSE", date(2025, 1, 9), note="Snacks"),
        "feb": add(bank, "80", "EXPENSE", date(2025, 2, 2), category_id=food, note="Lunch"),
    }
    ids = {name: txn.id for name, txn in rows.items()}
    return {"bank": bank.id, "cash": cash.id, "food": food, "ids": ids}


def _ids(rows):
    return [row.id for row in rows]


class TestListTransactions:
    def test_default_order_newest_first(self, db_session, book):
        ids = book["ids"]
        rows = ReportService(db_session).list_transactions()
        assert _ids(rows) == [ids["feb"], ids["snack"], ids["atm"], ids["lunch"], ids["salary"]]

    def test_search_and_type(self, db_session, book):
        svc = ReportService(db_session)
        assert _ids(svc.list_transactions(TransactionFilter(search="lunch"))) == [
            book["ids"]["feb"],
            book["ids"]["lunch"],
        ]
        assert _ids(svc.list_transactions(TransactionFilter(types={models.TxnType.INCOME}))) == [
            book["ids"]["salary"]
        ]

    def test_account_filter_includes_incoming_transfers(self, db_session, book):
        rows = ReportService(db_session).list_transactions(TransactionFilter(account_ids={book["cash"]}))
        assert _ids(rows) == [book["ids"]["snack"], book["ids"]["atm"]]

    def test_category_and_uncategorized(self, db_session, book):
        svc = ReportService(db_session)
        only_food = svc.list_transactions(TransactionFilter(category_ids={book["food"]}))
        assert _ids(only_food) == [book["ids"]["feb"], book["ids"]["lunch"]]
        with_none = svc.list_transactions(
            TransactionFilter(category_ids={book["food"]}, include_uncategorized=True, types={models.TxnType.EXPENSE})
        )
        assert _ids(with_none) == [book["ids"]["feb"], book["ids"]["snack"], book["ids"]["lunch"]]

    def test_date_amount_sort_and_paging(self, db_session, book):
        flt = TransactionFilter(
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
            min_amount=Decimal("100"),
            sort_by=SortOption.AMOUNT_ASC,
        )
        svc = ReportService(db_session)
        assert _ids(svc.list_transactions(flt)) == [book["ids"]["lunch"], book["ids"]["atm"], book["ids"]["salary"]]
        assert _ids(svc.list_transactions(flt, limit=1, offset=1)) == [book["ids"]["atm"]]

    def test_filter_ranges_validated(self):
        with pytest.raises(ValueError):
            TransactionFilter(start_date=date(2025, 2, 1), end_date=date(2025, 1, 1))


class TestTotals:
    def test_type_totals(self, db_session, book):
        totals = ReportService(db_session).type_totals(date(2025, 1, 1), date(2025, 1, 31))
        assert totals.income == Decimal("5000")
        assert totals.expense == Decimal("160")
        assert totals.transfer == Decimal("300")
        assert totals.net == Decimal("4840")

    def test_category_totals(self, db_session, book):
        rows = ReportService(db_session).category_totals(date(2025, 1, 1), date(2025, 2, 28))
        assert [(r.category_name, r.total) for r in rows] == [
            ("Food & Dining", Decimal("200")),
            (None, Decimal("40")),
        ]


def test_reports_api(client, book):
    res = client.get("/api/reports/totals", params={"start_date": "2025-01-01", "end_date": "2025-01-31"})
    assert res.status_code == 200
    assert Decimal(res.json()["net"]) == 4840

    res = client.get(
        "/api/reports/category-totals",
        params={"start_date": "2025-01-01", "end_date": "2025-01-31", "type": "INCOME"},
    )
    assert [(r["category_name"], Decimal(r["total"])) for r in res.json()] == [("Salary", Decimal("5000"))]

    bad = client.get("/api/reports/totals", params={"start_date": "2025-02-01", "end_date": "2025-01-01"})
    assert bad.status_code == 400

    listing = client.get("/api/transactions", params={"type": "EXPENSE", "sort_by": "AMOUNT_DESC"})
    assert listing.headers["X-Total-Count"] == "3"
    assert [Decimal(r["amount"]) for r in listing.json()] == [120, 80, 40]

    bad_filter = client.get("/api/transactions", params={"min_amount": "10", "max_amount": "1"})
    assert bad_filter.status_code == 400
    assert bad_filter.json()["field"] == "filter"


def test_total_count_ignores_paging(client, db_session, book):
    assert ReportService(db_session).count_transactions() == 5

    page = client.get("/api/transactions", params={"limit": 2})
    assert page.headers["X-Total-Count"] == "5"
    assert [r["id"] for r in page.json()] == [book["ids"]["feb"], book["ids"]["snack"]]

    tail = client.get("/api/transactions", params={"limit": 2, "offset": 4})
    assert tail.headers["X-Total-Count"] == "5"
    assert [r["id"] for r in tail.json()] == [book["ids"]["salary"]]

    expenses = client.get("/api/transactions", params={"type": "EXPENSE", "limit": 1})
    assert expenses.headers["X-Total-Count"] == "3"
    assert len(expenses.json()) == 1

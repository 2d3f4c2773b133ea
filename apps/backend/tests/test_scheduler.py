"""
Recurring scheduler runs
"""

from __future__ import annotations

import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger import models
from ledger.errors import SchedulerRuleError
from ledger.services.recurring_service import RecurringRuleService
from ledger.services.report_service import ReportService
from ledger.services.scheduler import SchedulerTimer, occurrence_key, recurring_note


@pytest.fixture()
def rules(db_session):
    return RecurringRuleService(db_session)


def _rule(rules, account, **extra):
    data = {
        "name": "Rent",
        "account_id": account.id,
        "amount": Decimal("100"),
        "type": models.TxnType.EXPENSE,
        "frequency": models.RecurringFrequency.MONTHLY,
        "start_date": date(2025, 1, 1),
    }
    data.update(extra)
    return rules.create(data)


def _reload(db_session, rule_id):
    db_session.expire_all()
    return db_session.get(models.RecurringRule, rule_id)


def _txns(db_session):
    db_session.expire_all()
    return ReportService(db_session).list_transactions()


def test_materializes_due_rule(scheduler, rules, make_account, balance, db_session):
    acc = make_account("Main", 1000)
    rule = _rule(rules, acc, note="Flat 4B")
    rule_id = rule.id

    early = scheduler.run(date(2025, 1, 15))
    assert early.materialized == 0
    assert _txns(db_session) == []

    result = scheduler.run(date(2025, 2, 1))
    assert result.materialized == 1
    assert result.failed == 0

    [txn] = _txns(db_session)
    assert txn.external_id == f"rule-{rule_id}-2025-02-01"
    assert txn.recurring_rule_id == rule_id
    assert txn.note == "Flat 4B (Recurring: Rent)"
    assert txn.date == date(2025, 2, 1)
    assert balance(acc.id) == Decimal("900")

    reloaded = _reload(db_session, rule_id)
    assert reloaded.next_occurrence == date(2025, 3, 1)
    assert reloaded.last_executed == date(2025, 2, 1)


def test_rerun_is_idempotent(scheduler, rules, make_account, balance, db_session):
    acc = make_account("Main", 1000)
    _rule(rules, acc)
    scheduler.run(date(2025, 2, 1))
    again = scheduler.run(date(2025, 2, 1))
    assert again.materialized == 0
    assert len(_txns(db_session)) == 1
    assert balance(acc.id) == Decimal("900")


def test_one_occurrence_per_run(scheduler, rules, make_account, db_session):
    acc = make_account("Main")
    rule_id = _rule(rules, acc).id

    # several periods overdue still yields a single transaction
    result = scheduler.run(date(2025, 6, 15))
    assert result.materialized == 1
    [txn] = _txns(db_session)
    assert txn.date == date(2025, 6, 15)
    assert txn.external_id == occurrence_key(rule_id, date(2025, 2, 1))
    assert _reload(db_session, rule_id).next_occurrence == date(2025, 3, 1)


def test_existing_key_only_advances_schedule(scheduler, rules, ledger, make_account, balance, db_session):
    acc = make_account("Main", 1000)
    rule_id = _rule(rules, acc).id
    ledger.insert_transaction(
        {
            "account_id": acc.id,
            "amount": Decimal("100"),
            "type": "EXPENSE",
            "date": date(2025, 2, 1),
            "external_id": occurrence_key(rule_id, date(2025, 2, 1)),
        }
    )

    result = scheduler.run(date(2025, 2, 1))
    assert result.materialized == 0
    assert result.failed == 0
    assert len(_txns(db_session)) == 1
    assert balance(acc.id) == Decimal("900")
    assert _reload(db_session, rule_id).next_occurrence == date(2025, 3, 1)


def test_expired_rule_deactivated(scheduler, rules, make_account, db_session):
    acc = make_account("Main")
    rule_id = _rule(rules, acc, end_date=date(2025, 1, 20)).id

    result = scheduler.run(date(2025, 2, 1))
    assert result.deactivated == 1
    assert result.materialized == 0
    assert _txns(db_session) == []
    assert _reload(db_session, rule_id).is_active is False

    # inactive rules are no longer due
    assert scheduler.run(date(2025, 9, 1)).deactivated == 0


def test_failing_rule_does_not_stop_the_run(scheduler, rules, make_account, category, balance, db_session):
    acc = make_account("Main", 500)
    broken = _rule(rules, acc, name="Broken", start_date=date(2024, 12, 1))
    healthy = _rule(rules, acc, name="Phone", amount=Decimal("20"))
    broken_id, healthy_id = broken.id, healthy.id

    # an income category on an expense rule fails validation at run time
    broken.category_id = category("Salary").id
    db_session.commit()

    result = scheduler.run(date(2025, 2, 1))
    assert result.materialized == 1
    assert result.failed == 1
    [err] = result.errors
    assert isinstance(err, SchedulerRuleError)
    assert err.rule_id == broken_id
    assert err.rule_name == "Broken"
    assert err.to_dict()["error"] == "ValidationError"

    assert balance(acc.id) == Decimal("480")
    assert _reload(db_session, broken_id).next_occurrence == date(2025, 1, 1)
    assert _reload(db_session, healthy_id).next_occurrence == date(2025, 3, 1)


def test_paused_rule_is_not_due(scheduler, rules, make_account, db_session):
    acc = make_account("Main")
    rule_id = _rule(rules, acc).id
    rules.set_active(rule_id, False)
    assert scheduler.run(date(2025, 2, 1)).materialized == 0

    rules.set_active(rule_id, True)
    assert scheduler.run(date(2025, 2, 1)).materialized == 1
    assert len(_txns(db_session)) == 1


def test_transfer_rule(scheduler, rules, make_account, balance):
    a = make_account("Main", 300)
    b = make_account("Savings")
    _rule(rules, a, name="Sweep", type=models.TxnType.TRANSFER, to_account_id=b.id)
    assert scheduler.run(date(2025, 2, 1)).materialized == 1
    assert balance(a.id) == Decimal("200")
    assert balance(b.id) == Decimal("100")


def test_concurrent_trigger_is_skipped(scheduler, rules, make_account, db_session):
    acc = make_account("Main")
    _rule(rules, acc)
    with scheduler._running:
        assert scheduler.is_running
        result = scheduler.run(date(2025, 2, 1))
    assert result.skipped is True
    assert result.materialized == 0
    assert _txns(db_session) == []
    assert scheduler.run(date(2025, 2, 1)).materialized == 1


def test_cancel_between_rules(scheduler, rules, make_account, db_session):
    acc = make_account("Main")
    _rule(rules, acc)
    cancel = threading.Event()
    cancel.set()
    result = scheduler.run(date(2025, 2, 1), cancel=cancel)
    assert result.cancelled is True
    assert result.materialized == 0
    assert _txns(db_session) == []


def test_recurring_note():
    rule = models.RecurringRule(name="Rent", note="")
    assert recurring_note(rule) == "(Recurring: Rent)"


def test_run_via_api(client, db_session, rules, make_account):
    acc = make_account("Main", 50)
    rule_id = _rule(rules, acc, amount=Decimal("20")).id

    res = client.post("/api/scheduler/run", json={"now": "2025-02-01"})
    assert res.status_code == 200
    body = res.json()
    assert body["materialized"] == 1
    assert body["skipped"] is False
    assert body["errors"] == []

    rule = client.get(f"/api/recurring-rules/{rule_id}").json()
    assert rule["last_executed"] == "2025-02-01"
    assert Decimal(client.get(f"/api/accounts/{acc.id}").json()["balance"]) == 30
    row = db_session.execute(
        select(models.Transaction).where(models.Transaction.recurring_rule_id == rule_id)
    ).scalar_one()
    assert row.amount == Decimal("20")


class TestSchedulerTimer:
    def test_requires_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            SchedulerTimer(scheduler, 0)

    def test_runs_until_stopped(self):
        ran = threading.Event()

        class _Probe:
            calls = 0

            def run(self, now=None, *, cancel=None):
                self.calls += 1
                ran.set()

        probe = _Probe()
        timer = SchedulerTimer(probe, 0.01)
        timer.start()
        assert ran.wait(2)
        timer.stop(timeout=2)
        assert probe.calls >= 1
        assert timer._thread is None

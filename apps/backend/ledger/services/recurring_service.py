from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import RuleNotFound, ValidationError
from ..schemas import RecurringRuleCreate, RecurringRuleUpdate
from ..utils.dates import add_months
from .ledger_service import validate_transaction_values


logger = logging.getLogger(__name__)


def get_next_occurrence(frequency: models.RecurringFrequency, from_date: date) -> date:
    """Advance ``from_date`` by one period of ``frequency``.

    Month based steps clamp to the last day of the target month, so
    2025-01-31 + MONTHLY is 2025-02-28 and 2024-02-29 + YEARLY is 2025-02-28.
    """
    if frequency is models.RecurringFrequency.DAILY:
        return from_date + timedelta(days=1)
    if frequency is models.RecurringFrequency.WEEKLY:
        return from_date + timedelta(weeks=1)
    if frequency is models.RecurringFrequency.BIWEEKLY:
        return from_date + timedelta(weeks=2)
    if frequency is models.RecurringFrequency.MONTHLY:
        return add_months(from_date, 1)
    if frequency is models.RecurringFrequency.QUARTERLY:
        return add_months(from_date, 3)
    if frequency is models.RecurringFrequency.YEARLY:
        return add_months(from_date, 12)
    raise ValueError(f"Unknown recurring frequency: {frequency!r}")


def iter_occurrences(rule: models.RecurringRule, *, start: Optional[date] = None) -> Iterator[date]:
    """Yield the rule's upcoming occurrences, honoring ``end_date``."""
    current = start or rule.next_occurrence
    while rule.end_date is None or current <= rule.end_date:
        yield current
        current = get_next_occurrence(rule.frequency, current)


class RecurringRuleService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, rule_id: int) -> models.RecurringRule:
        rule = self.db.get(models.RecurringRule, rule_id)
        if rule is None:
            raise RuleNotFound(rule_id, field="rule_id")
        return rule

    def list_rules(self, *, is_active: Optional[bool] = None) -> list[models.RecurringRule]:
        q = select(models.RecurringRule)
        if is_active is not None:
            q = q.where(models.RecurringRule.is_active == bool(is_active))
        return list(self.db.execute(q.order_by(models.RecurringRule.next_occurrence, models.RecurringRule.id)).scalars())

    def due(self, now: date) -> list[models.RecurringRule]:
        return list(
            self.db.execute(
                select(models.RecurringRule)
                .where(
                    models.RecurringRule.is_active.is_(True),
                    models.RecurringRule.next_occurrence <= now,
                )
                .order_by(models.RecurringRule.next_occurrence, models.RecurringRule.id)
            ).scalars()
        )

    def _validate(self, data: dict[str, Any]) -> None:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Recurring rule name must not be empty", field="name")
        data["name"] = name
        if data.get("end_date") is not None and data["end_date"] < data["start_date"]:
            raise ValidationError("end_date must be on or after start_date", field="end_date")
        cleaned = validate_transaction_values(
            self.db,
            {
                "account_id": data.get("account_id"),
                "to_account_id": data.get("to_account_id"),
                "category_id": data.get("category_id"),
                "amount": data.get("amount"),
                "type": data.get("type"),
                "date": data.get("start_date"),
                "note": data.get("note"),
            },
        )
        data["type"] = cleaned["type"]
        data["amount"] = cleaned["amount"]
        data["note"] = cleaned["note"]

    def create(self, payload: RecurringRuleCreate | dict) -> models.RecurringRule:
        data = payload.model_dump() if isinstance(payload, RecurringRuleCreate) else dict(payload)
        self._validate(data)
        # first run lands one period after the start date
        data["next_occurrence"] = get_next_occurrence(models.RecurringFrequency(data["frequency"]), data["start_date"])
        rule = models.RecurringRule(**data)
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info("Recurring rule %s (%s) created, next on %s", rule.id, rule.name, rule.next_occurrence)
        return rule

    def update(self, rule_id: int, payload: RecurringRuleUpdate | dict) -> models.RecurringRule:
        rule = self.get(rule_id)
        changes = payload.model_dump(exclude_unset=True) if isinstance(payload, RecurringRuleUpdate) else dict(payload)
        if not changes:
            return rule
        unknown = set(changes) - set(RecurringRuleUpdate.model_fields)
        if unknown:
            field = sorted(unknown)[0]
            raise ValidationError(f"Field cannot be changed: {field}", field=field)

        merged = {
            column: getattr(rule, column)
            for column in (
                "name",
                "account_id",
                "to_account_id",
                "category_id",
                "amount",
                "type",
                "frequency",
                "start_date",
                "end_date",
                "note",
                "is_active",
            )
        }
        merged.update(changes)
        self._validate(merged)

        reschedule = rule.last_executed is None and (
            merged["start_date"] != rule.start_date or merged["frequency"] != rule.frequency
        )
        for key, value in merged.items():
            setattr(rule, key, value)
        if reschedule:
            rule.next_occurrence = get_next_occurrence(models.RecurringFrequency(rule.frequency), rule.start_date)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def set_active(self, rule_id: int, is_active: bool) -> models.RecurringRule:
        rule = self.get(rule_id)
        rule.is_active = bool(is_active)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        # materialized transactions stay; only the back-reference goes
        self.db.execute(
            update(models.Transaction)
            .where(models.Transaction.recurring_rule_id == rule.id)
            .values(recurring_rule_id=None)
            .execution_options(synchronize_session=False)
        )
        self.db.delete(rule)
        self.db.commit()
        logger.info("Recurring rule %s deleted", rule_id)

    def preview_occurrences(self, rule_id: int, count: int = 5) -> list[date]:
        if count < 1:
            raise ValidationError("count must be at least 1", field="count")
        rule = self.get(rule_id)
        occurrences: list[date] = []
        for occurrence in iter_occurrences(rule):
            if len(occurrences) >= count:
                break
            occurrences.append(occurrence)
        return occurrences

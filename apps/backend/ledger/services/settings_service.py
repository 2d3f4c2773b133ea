from __future__ import annotations

from sqlalchemy.orm import Session

from .. import models
from ..schemas import AppSettingsUpdate


SETTINGS_ID = 1


class SettingsService:
    """Singleton application settings row."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self) -> models.AppSettings:
        row = self.db.get(models.AppSettings, SETTINGS_ID)
        if row is None:
            row = models.AppSettings(id=SETTINGS_ID)
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return row

    def update(self, payload: AppSettingsUpdate) -> models.AppSettings:
        row = self.get()
        for key, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(row, key, value)
        if row.currency:
            row.currency = row.currency.upper()
        self.db.commit()
        self.db.refresh(row)
        return row

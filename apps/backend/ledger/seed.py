from __future__ import annotations

import logging

from .core.config import settings
from .core.database import Store
from .services.category_service import CategoryService
from .services.settings_service import SettingsService


logger = logging.getLogger(__name__)


def seed(store: Store) -> None:
    """Insert default categories and the settings row. Safe to run repeatedly."""
    with store.session() as db:
        try:
            CategoryService(db).ensure_defaults()
            SettingsService(db).get()
            logger.info("Default categories and settings ensured")
        except Exception:
            db.rollback()
            raise


if __name__ == "__main__":
    _store = Store.from_settings(settings).open()
    try:
        _store.create_all()
        seed(_store)
    finally:
        _store.close()

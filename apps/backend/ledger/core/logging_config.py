from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``ledger`` logger tree.

    Safe to call more than once (uvicorn reloads, test sessions).
    """
    root = logging.getLogger("ledger")
    root.setLevel(level.upper())
    if not any(getattr(h, "_ledger_handler", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._ledger_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)

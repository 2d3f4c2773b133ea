"""Personal finance ledger backend."""

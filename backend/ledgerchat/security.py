"""Data security utilities for ledger data.

The ledger holds balances, e-mail addresses and transaction history.
These utilities enforce restrictive permissions on the data directory and
the SQLite files, and keep log lines free of amounts, full account ids
and counterparties.
"""

import os
from pathlib import Path

# SQLite writes these next to the main file in WAL mode.
SQLITE_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def secure_directory(path: Path, mode: int = 0o700) -> None:
    """Create directory with restrictive permissions. Creates parent dirs if needed."""
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)


def secure_database(path: Path, mode: int = 0o600) -> list[Path]:
    """Restrict the ledger database and any WAL/SHM/journal files beside it.

    Returns the files whose permissions were changed.
    """
    candidates = [path] + [path.with_name(path.name + suffix) for suffix in SQLITE_SIDECAR_SUFFIXES]
    secured = []
    for candidate in candidates:
        if candidate.exists():
            os.chmod(candidate, mode)
            secured.append(candidate)
    return secured


def mask_id(identifier: str | None, visible: int = 4) -> str:
    """Shorten an account or session id for logs: ``…9f3c``."""
    if not identifier:
        return "-"
    return "…" + identifier[-visible:]


def sanitize_log_entry(tool_name: str, duration_ms: float, success: bool) -> str:
    """Create a sanitized log entry for agent tool calls.

    Logs tool name and timing but NOT the arguments or results, which
    carry account ids, amounts and recipient e-mails.
    """
    status = "OK" if success else "FAIL"
    return f"[tool] {tool_name} {status} {duration_ms:.1f}ms"

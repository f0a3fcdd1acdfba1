"""Tests for data security utilities (file permissions, id masking and sanitized tool logging)."""

import stat
from pathlib import Path

from ledgerchat.db.repositories import UserRepo
from ledgerchat.db.sqlite import SQLiteDB
from ledgerchat.security import mask_id, sanitize_log_entry, secure_database, secure_directory


def test_secure_directory_creates_with_permissions(tmp_path: Path) -> None:
    """secure_directory creates a directory with 0o700 permissions."""
    target = tmp_path / "secure_data" / "nested"
    secure_directory(target)

    assert target.exists()
    assert target.is_dir()
    actual_mode = stat.S_IMODE(target.stat().st_mode)
    assert actual_mode == 0o700, f"Expected 0o700, got {oct(actual_mode)}"


def test_secure_database_sets_permissions(tmp_path: Path) -> None:
    """secure_database sets a plain database file to 0o600 permissions."""
    target = tmp_path / "ledgerchat.db"
    target.write_bytes(b"")

    assert secure_database(target) == [target]

    actual_mode = stat.S_IMODE(target.stat().st_mode)
    assert actual_mode == 0o600, f"Expected 0o600, got {oct(actual_mode)}"


def test_secure_database_covers_wal_files(tmp_path: Path) -> None:
    target = tmp_path / "ledgerchat.db"
    db = SQLiteDB(str(target))
    UserRepo(db).create("Ana Lima", "ana@example.com")
    try:
        secured = secure_database(target)
        assert target.with_name("ledgerchat.db-wal") in secured
        for path in secured:
            assert stat.S_IMODE(path.stat().st_mode) == 0o600
    finally:
        db.close()


def test_secure_database_ignores_missing_path(tmp_path: Path) -> None:
    assert secure_database(tmp_path / "missing.db") == []
    assert not (tmp_path / "missing.db").exists()


def test_mask_id_keeps_tail_only() -> None:
    assert mask_id("3f1c2a9e-0000-4bcd-9f3c") == "…9f3c"
    assert mask_id(None) == "-"
    assert mask_id("") == "-"


def test_sanitize_log_entry_success() -> None:
    """sanitize_log_entry returns formatted string with OK status."""
    entry = sanitize_log_entry("withdraw_money", 42.5, success=True)
    assert entry == "[tool] withdraw_money OK 42.5ms"


def test_sanitize_log_entry_failure() -> None:
    """sanitize_log_entry includes FAIL status for unsuccessful calls."""
    entry = sanitize_log_entry("transfer_money", 150.0, success=False)
    assert entry == "[tool] transfer_money FAIL 150.0ms"

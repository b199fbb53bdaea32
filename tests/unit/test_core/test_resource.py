"""
Unit tests for Resource.

Tests locking, plaintext and encrypted persistence, and the read/rewrite
operations on ledger and networth files.
"""

import os

import pytest

from pledger.core.encryption import MAGIC
from pledger.core.exceptions import (
    IncorrectPasswordError,
    InvalidLineError,
    LockHeldError,
    StorageError,
)
from pledger.core.models import Mode, build_line
from pledger.core.resource import Resource, lock_path

from conftest import LEDGER_HEADER, TEST_PASSPHRASE

GROCERIES = "Bank,2024-06-15,Groceries,Weekly shop,1,Market,-42.10,EUR,,"
SALARY = "Bank,2024-06-01,Salary,June,,,2500.00,EUR,,7"


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "ledger.csv"


def transaction(*values):
    return build_line(list(values), Mode.LEDGER)


class TestLocking:
    """Tests for the lock file."""

    def test_lock_created_and_released(self, ledger_path):
        """The lock exists while the resource is open."""
        with Resource.open(ledger_path, Mode.LEDGER):
            assert lock_path(ledger_path).exists()

        assert not lock_path(ledger_path).exists()

    def test_second_open_fails(self, write_file):
        """A second resource fails immediately and touches nothing on disk."""
        path = write_file(Mode.LEDGER, [GROCERIES])
        before = path.read_bytes()

        with Resource.open(path, Mode.LEDGER):
            owner = lock_path(path).read_text()

            with pytest.raises(LockHeldError):
                Resource.open(path, Mode.LEDGER)

            assert path.read_bytes() == before
            assert lock_path(path).read_text() == owner == str(os.getpid())

        assert path.read_bytes() == before

    def test_reopen_after_close(self, ledger_path):
        resource = Resource.open(ledger_path, Mode.LEDGER)
        resource.close()

        Resource.open(ledger_path, Mode.LEDGER).close()

    def test_scratch_removed_on_close(self, ledger_path):
        resource = Resource.open(ledger_path, Mode.LEDGER)
        scratch = resource.scratch

        resource.close()

        assert not scratch.exists()

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "ledger.csv"

        with Resource.open(path, Mode.LEDGER) as resource:
            resource.create()

        assert path.exists()


class TestPlaintext:
    """Tests for files without a passphrase."""

    def test_create_writes_header(self, ledger_path):
        with Resource.open(ledger_path, Mode.LEDGER) as resource:
            resource.create()

        assert ledger_path.read_text(encoding="utf-8") == LEDGER_HEADER + "\n"

    def test_book_appends(self, ledger_path):
        with Resource.open(ledger_path, Mode.LEDGER) as resource:
            resource.create()
            resource.book([transaction("Bank", "2024-06-15", "Groceries", "Weekly shop", "1", "Market", "-42.1", "EUR")])

        assert ledger_path.read_text(encoding="utf-8").splitlines() == [LEDGER_HEADER, GROCERIES]

    def test_book_terminates_last_row(self, ledger_path):
        """A file without a trailing newline does not merge rows."""
        ledger_path.write_text(LEDGER_HEADER + "\n" + SALARY, encoding="utf-8")

        with Resource.open(ledger_path, Mode.LEDGER) as resource:
            resource.book([transaction("Bank", "2024-06-15", "Groceries", "Weekly shop", "1", "Market", "-42.1", "EUR")])

        assert ledger_path.read_text(encoding="utf-8").splitlines() == [LEDGER_HEADER, SALARY, GROCERIES]

    def test_lines_in_file_order(self, write_file):
        path = write_file(Mode.LEDGER, [GROCERIES, SALARY])

        with Resource.open(path, Mode.LEDGER) as resource:
            lines = resource.lines()

        assert [line.category for line in lines] == ["Groceries", "Salary"]
        assert lines[1].id == "7"

    def test_missing_file(self, ledger_path):
        with Resource.open(ledger_path, Mode.LEDGER) as resource:
            with pytest.raises(StorageError):
                resource.lines()

    def test_invalid_line_reports_number(self, write_file):
        path = write_file(Mode.LEDGER, [SALARY, "Bank,not-a-date,Food,,,,-1,EUR,,"])

        with Resource.open(path, Mode.LEDGER) as resource:
            with pytest.raises(InvalidLineError) as exc_info:
                resource.lines()

        assert exc_info.value.line_number == 3

    def test_byte_order_mark_ignored(self, ledger_path):
        ledger_path.write_text("\ufeff" + LEDGER_HEADER + "\n" + GROCERIES + "\n", encoding="utf-8")

        with Resource.open(ledger_path, Mode.LEDGER) as resource:
            lines = resource.lines()

        assert [line.category for line in lines] == ["Groceries"]

    def test_rewrite_expands_and_drops(self, write_file, read_rows):
        """The visitor may return several lines, or none, per row."""
        path = write_file(Mode.LEDGER, [GROCERIES, SALARY])

        def visitor(line):
            if line.category == "Salary":
                return []
            return [line.with_id("1"), line.with_id("2")]

        with Resource.open(path, Mode.LEDGER) as resource:
            resource.rewrite(visitor)

        assert [row[-1] for row in read_rows(path)] == ["1", "2"]

    def test_rewrite_finish_appends(self, write_file, read_rows):
        path = write_file(Mode.LEDGER, [GROCERIES])
        held = []

        def visitor(line):
            held.append(line)
            return []

        with Resource.open(path, Mode.LEDGER) as resource:
            resource.rewrite(visitor, finish=lambda: held)

        assert read_rows(path) == [GROCERIES.split(",")]

    def test_rewrite_error_leaves_file(self, write_file):
        """A visitor failure persists nothing."""
        path = write_file(Mode.LEDGER, [GROCERIES, SALARY])
        before = path.read_bytes()

        def visitor(line):
            raise RuntimeError("boom")

        with Resource.open(path, Mode.LEDGER) as resource:
            with pytest.raises(RuntimeError):
                resource.rewrite(visitor)

        assert path.read_bytes() == before

    def test_create_with_replaces(self, write_file, read_rows):
        path = write_file(Mode.LEDGER, [GROCERIES, SALARY])

        with Resource.open(path, Mode.LEDGER) as resource:
            lines = resource.lines()
            resource.create_with(reversed(lines))

        assert [row[2] for row in read_rows(path)] == ["Salary", "Groceries"]

    def test_apply_persists_changes(self, write_file):
        path = write_file(Mode.LEDGER, [GROCERIES])

        def action(scratch):
            with open(scratch, "a", encoding="utf-8") as f:
                f.write(SALARY + "\n")

        with Resource.open(path, Mode.LEDGER) as resource:
            resource.apply(action)
            assert len(resource.lines()) == 2


class TestEncrypted:
    """Tests for files with a passphrase."""

    def test_create_is_encrypted(self, ledger_path):
        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            resource.create()

        data = ledger_path.read_bytes()
        assert data.startswith(MAGIC)
        assert b"Account" not in data

    def test_roundtrip(self, ledger_path):
        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            resource.create()
            resource.book([transaction("Bank", "2024-06-15", "Groceries", "", "", "", "-1", "EUR")])

        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            lines = resource.lines()

        assert len(lines) == 1
        assert lines[0].category == "Groceries"

    def test_plaintext_file_gets_encrypted(self, write_file):
        """A plaintext file is read as-is and encrypted on persist."""
        path = write_file(Mode.LEDGER, [GROCERIES])

        with Resource.open(path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            assert len(resource.lines()) == 1

        assert path.read_bytes().startswith(MAGIC)

    def test_empty_file_is_plaintext(self, ledger_path):
        ledger_path.write_bytes(b"")

        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            assert resource.lines() == []

    def test_wrong_passphrase_leaves_file(self, ledger_path):
        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            resource.create()
        before = ledger_path.read_bytes()

        with Resource.open(ledger_path, Mode.LEDGER, "wrong") as resource:
            with pytest.raises(IncorrectPasswordError):
                resource.lines()

        assert ledger_path.read_bytes() == before

    def test_byte_order_mark_with_passphrase(self, ledger_path):
        """A plaintext file with a BOM is still recognised as plaintext."""
        ledger_path.write_text("\ufeff" + LEDGER_HEADER + "\n" + GROCERIES + "\n", encoding="utf-8")

        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            lines = resource.lines()

        assert [line.category for line in lines] == ["Groceries"]

    def test_encrypted_file_without_passphrase(self, ledger_path):
        """Reading ciphertext as CSV fails with a storage error."""
        with Resource.open(ledger_path, Mode.LEDGER, TEST_PASSPHRASE) as resource:
            resource.create()
            resource.book([transaction("Bank", "2024-06-15", "Groceries", "", "", "", "-1", "EUR")])
        before = ledger_path.read_bytes()

        with Resource.open(ledger_path, Mode.LEDGER) as resource:
            with pytest.raises(StorageError) as exc_info:
                resource.lines()

        assert "not valid UTF-8" in exc_info.value.message
        assert ledger_path.read_bytes() == before

"""
Locked, optionally encrypted CSV resource.

A Resource owns one ledger/networth file. While it is alive it holds the
lock file ``<filepath>.lock`` and a private scratch copy of the (decrypted)
file. Every public operation loads the original into the scratch file, works
only on scratch files, and finally persists the result over the original
path with an atomic replace. The original file is therefore read once and
written once per operation, and a failure before the final replace leaves it
exactly as it was.

Usage:
    with Resource.open(config.filepath(Mode.LEDGER), Mode.LEDGER, passphrase) as resource:
        resource.book([line])
"""

import csv
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Union

from pledger.core.encryption import decrypt_file, encrypt_file
from pledger.core.exceptions import InvalidLineError, LockHeldError, StorageError
from pledger.core.models import Line, Mode, headers, parse_line

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
SCRATCH_PREFIX = "pledger-"
SCRATCH_SUFFIX = ".csv"
LINE_TERMINATOR = "\n"

PathLike = Union[str, Path]


def lock_path(filepath: PathLike) -> Path:
    """Lock file guarding ``filepath``."""
    filepath = Path(filepath)
    return filepath.with_name(filepath.name + LOCK_SUFFIX)


class FileLock:
    """
    Exclusive lock backed by a file created with O_EXCL.

    Acquisition fails immediately when the file already exists; the file is
    removed on release.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.held = False

    def acquire(self) -> None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockHeldError(str(self.path)[: -len(LOCK_SUFFIX)])
        except OSError as e:
            raise StorageError(f"Cannot create lock {self.path}: {e}") from e

        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
        finally:
            os.close(fd)

        self.held = True
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        if not self.held:
            return
        self.held = False
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning("Lock %s disappeared before release", self.path)
        logger.debug("Released lock %s", self.path)


def _scratch_file() -> Path:
    fd, name = tempfile.mkstemp(prefix=SCRATCH_PREFIX, suffix=SCRATCH_SUFFIX)
    os.close(fd)
    return Path(name)


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class Resource:
    """
    Read-modify-write access to one CSV file.

    Use :meth:`open` (or the constructor) to acquire the lock; always
    :meth:`close` it, ideally through ``with``.
    """

    def __init__(self, filepath: PathLike, mode: Mode, passphrase: Optional[str] = None):
        """
        Acquire the lock of ``filepath`` and create the scratch file.

        Args:
            filepath: Ledger or networth CSV file
            mode: Kind of rows stored in the file
            passphrase: Encrypt the file at rest when set

        Raises:
            LockHeldError: If another live instance holds the lock
            StorageError: If the lock or scratch file cannot be created
        """
        self.filepath = Path(filepath)
        self.mode = mode
        self._passphrase = passphrase
        self._closed = True

        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create directory {self.filepath.parent}: {e}") from e

        self._lock = FileLock(lock_path(self.filepath))
        self._lock.acquire()

        try:
            self.scratch = _scratch_file()
        except OSError as e:
            self._lock.release()
            raise StorageError(f"Cannot create scratch file: {e}") from e

        self._closed = False

    @classmethod
    def open(cls, filepath: PathLike, mode: Mode, passphrase: Optional[str] = None) -> "Resource":
        return cls(filepath, mode, passphrase)

    def close(self) -> None:
        """Delete the scratch file and release the lock."""
        if self._closed:
            return
        self._closed = True
        try:
            _remove(self.scratch)
        finally:
            self._lock.release()

    def __enter__(self) -> "Resource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if not getattr(self, "_closed", True):
            self.close()

    def headers(self) -> List[str]:
        return headers(self.mode)

    def exists(self) -> bool:
        return self.filepath.exists()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(self) -> None:
        """Write a file holding only the header row."""
        with self._writer(self.scratch, "w") as writer:
            writer.writerow(self.headers())
        self._persist(self.scratch)

    def create_with(self, lines: Iterable[Line]) -> None:
        """Replace the whole file with ``lines``."""
        accumulator = _scratch_file()
        try:
            with self._writer(accumulator, "w") as writer:
                writer.writerow(self.headers())
                for line in lines:
                    writer.writerow(line.to_row())
            self._persist(accumulator)
        finally:
            _remove(accumulator)

    def book(self, lines: Iterable[Line]) -> None:
        """Append ``lines`` to the end of the file."""
        self._load()
        self._terminate_last_row()
        with self._writer(self.scratch, "a") as writer:
            for line in lines:
                writer.writerow(line.to_row())
        self._persist(self.scratch)

    def apply(self, action: Callable[[Path], None]) -> None:
        """Run ``action`` against the loaded scratch file, then persist it."""
        self._load()
        action(self.scratch)
        self._persist(self.scratch)

    def line(self, visitor: Callable[[Line], None]) -> None:
        """Call ``visitor`` for every row in file order; the file is unchanged."""
        self._load()
        for record in self._read(self.scratch):
            visitor(record)
        self._persist(self.scratch)

    def lines(self) -> List[Line]:
        result: List[Line] = []
        self.line(result.append)
        return result

    def rewrite(
        self,
        visitor: Callable[[Line], List[Line]],
        finish: Optional[Callable[[], List[Line]]] = None,
    ) -> None:
        """
        Rebuild the file from what ``visitor`` returns for each row.

        The visitor may return zero, one or more lines per row; they are
        written in the order returned. ``finish`` may return lines held back
        by the visitor, written after the last row. If the visitor raises,
        nothing is persisted.
        """
        self._load()
        accumulator = _scratch_file()
        try:
            with self._writer(accumulator, "w") as writer:
                writer.writerow(self.headers())
                for record in self._read(self.scratch):
                    for line in visitor(record):
                        writer.writerow(line.to_row())
                if finish is not None:
                    for line in finish():
                        writer.writerow(line.to_row())
            self._persist(accumulator)
        finally:
            _remove(accumulator)

    # ------------------------------------------------------------------
    # Load / persist
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if not self.filepath.exists():
            raise StorageError(f"File {self.filepath} does not exist, create it first")

        if self._passphrase and not self._is_plaintext():
            decrypt_file(self.filepath, self.scratch, self._passphrase)
        else:
            try:
                shutil.copyfile(self.filepath, self.scratch)
            except OSError as e:
                raise StorageError(f"Cannot read {self.filepath}: {e}") from e

        logger.debug("Loaded %s into %s", self.filepath, self.scratch)

    def _persist(self, source: Path) -> None:
        """Write ``source`` over the original file (encrypted when configured)."""
        target = self.filepath.with_name(f".{self.filepath.name}.{os.getpid()}.tmp")
        try:
            if self._passphrase:
                encrypt_file(source, target, self._passphrase)
            else:
                shutil.copyfile(source, target)
            os.replace(target, self.filepath)
        except OSError as e:
            raise StorageError(f"Cannot write {self.filepath}: {e}") from e
        finally:
            _remove(target)

        logger.debug("Persisted %s", self.filepath)

    def _is_plaintext(self) -> bool:
        """
        True for an empty file or one that starts with this mode's header row.

        Such files are read as-is even when a passphrase is configured and
        get encrypted by the next persist.
        """
        try:
            with open(self.filepath, "rb") as f:
                head = f.read(1024)
        except OSError as e:
            raise StorageError(f"Cannot read {self.filepath}: {e}") from e

        if not head:
            return True
        try:
            first = head.decode("utf-8").lstrip("\ufeff").splitlines()[0]
        except (UnicodeDecodeError, IndexError):
            return False
        return first.split(",")[0].strip() == self.headers()[0]

    # ------------------------------------------------------------------
    # CSV helpers
    # ------------------------------------------------------------------

    def _read(self, path: Path) -> Iterator[Line]:
        with open(path, encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            try:
                for row in reader:
                    yield parse_line(row, self.mode)
            except UnicodeDecodeError as e:
                raise StorageError(
                    f"{self.filepath} is not valid UTF-8 (encrypted without a passphrase?)"
                ) from e
            except (ValueError, csv.Error) as e:
                raise InvalidLineError(reader.line_num, str(e)) from e

    @contextmanager
    def _writer(self, path: Path, how: str):
        with open(path, how, encoding="utf-8", newline="") as f:
            yield csv.writer(f, lineterminator=LINE_TERMINATOR)

    def _terminate_last_row(self) -> None:
        with open(self.scratch, "rb+") as f:
            if f.seek(0, os.SEEK_END) == 0:
                return
            f.seek(-1, os.SEEK_END)
            if f.read(1) not in (b"\n", b"\r"):
                f.write(LINE_TERMINATOR.encode("ascii"))


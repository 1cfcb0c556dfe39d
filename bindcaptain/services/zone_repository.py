"""Zone file storage: lookup, atomic writes, backups and per-zone locks."""
import fcntl
import logging
import os
import shutil
import tempfile
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from bindcaptain import BindCaptainError


logger = logging.getLogger(__name__)


class ZoneFileNotFoundError(BindCaptainError):
    """Raised when no zone file exists for a domain."""
    pass


class ZoneLockedError(BindCaptainError):
    """Raised when another writer holds the zone lock for too long."""
    pass


class ZoneRepository:
    """Reads, writes and backs up zone files.

    Zone files live either in a per-domain subdirectory
    (``<bind_dir>/<domain>/<domain>.db``) or directly in the zone root
    (``<bind_dir>/<domain>.db``). A path declared in named.conf takes
    precedence when it exists.
    """

    BACKUP_MARKER = ".db.backup."
    LOCK_POLL_INTERVAL = 0.1

    def __init__(
        self,
        bind_dir: str,
        backup_dir: str,
        lock_dir: Optional[str] = None,
        container_bind_dir: str = "/var/named",
        lock_timeout: float = 30,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize repository.

        Args:
            bind_dir: Zone file root as seen by this process
            backup_dir: Directory receiving zone backups
            lock_dir: Directory for lock files (defaults to backup_dir)
            container_bind_dir: Zone root inside the BIND container, used to
                map absolute paths declared in named.conf
            lock_timeout: Seconds to wait for a zone lock
            clock: Time source for backup names
        """
        self.bind_dir = bind_dir
        self.backup_dir = backup_dir
        self.lock_dir = lock_dir or backup_dir
        self.container_bind_dir = container_bind_dir
        self.lock_timeout = lock_timeout
        self.clock = clock

    def candidate_paths(self, domain: str, declared_file: Optional[str] = None) -> List[str]:
        """Possible zone file locations for a domain, in lookup order."""
        candidates = []
        if declared_file:
            if os.path.isabs(declared_file):
                container_root = self.container_bind_dir.rstrip("/") + "/"
                if declared_file.startswith(container_root):
                    candidates.append(
                        os.path.join(self.bind_dir, declared_file[len(container_root):])
                    )
                candidates.append(declared_file)
            else:
                candidates.append(os.path.join(self.bind_dir, declared_file))
        candidates.append(os.path.join(self.bind_dir, domain, f"{domain}.db"))
        candidates.append(os.path.join(self.bind_dir, f"{domain}.db"))
        return candidates

    def locate(self, domain: str, declared_file: Optional[str] = None) -> str:
        """Find the zone file of a domain.

        Raises:
            ZoneFileNotFoundError: If none of the candidate paths exists
        """
        for path in self.candidate_paths(domain, declared_file):
            if os.path.isfile(path):
                return path
        raise ZoneFileNotFoundError(f"Zone file for {domain} not found")

    def read(self, path: str) -> str:
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return f.read()

    def write(self, path: str, text: str) -> None:
        """Replace a zone file atomically.

        The new content is written to a temporary file next to the zone and
        renamed over it, so readers never see a half-written zone. Mode is
        copied from the old file; ownership is restored when permitted.
        """
        directory = os.path.dirname(path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix=".bindcaptain-", dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            if os.path.exists(path):
                shutil.copymode(path, tmp_path)
                stat = os.stat(path)
                try:
                    os.chown(tmp_path, stat.st_uid, stat.st_gid)
                except PermissionError:
                    pass  # Ownership fix is best effort
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def backup(self, domain: str, zone_path: str) -> str:
        """Copy the live zone file into the backup directory.

        Returns:
            Path of the new backup
        """
        os.makedirs(self.backup_dir, exist_ok=True)
        stamp = self.clock().strftime("%Y%m%d_%H%M%S")
        base = os.path.join(self.backup_dir, f"{domain}{self.BACKUP_MARKER}{stamp}")
        backup_path = base
        counter = 1
        while os.path.exists(backup_path):
            backup_path = f"{base}_{counter}"
            counter += 1

        shutil.copy2(zone_path, backup_path)
        logger.info(f"Backed up zone {domain} to {backup_path}")
        return backup_path

    def restore(self, zone_path: str, backup_path: str) -> None:
        """Copy a backup back over the live zone file, whole-file."""
        shutil.copyfile(backup_path, zone_path)
        logger.info(f"Restored {zone_path} from {backup_path}")

    def list_backups(self, domain: str) -> List[str]:
        """Backups of a domain, oldest first."""
        if not os.path.isdir(self.backup_dir):
            return []
        prefix = f"{domain}{self.BACKUP_MARKER}"
        names = sorted(name for name in os.listdir(self.backup_dir) if name.startswith(prefix))
        return [os.path.join(self.backup_dir, name) for name in names]

    def latest_backup(self, domain: str) -> Optional[str]:
        backups = self.list_backups(domain)
        return backups[-1] if backups else None

    @contextmanager
    def lock(self, domain: str) -> Iterator[None]:
        """Hold the exclusive writer lock of a zone.

        Uses an advisory ``flock`` on ``<lock_dir>/<domain>.lock`` so that
        separate processes (and separate threads opening their own handle)
        never interleave their backup/mutate/validate/reload sequences.

        Raises:
            ZoneLockedError: If the lock is not acquired within lock_timeout
        """
        os.makedirs(self.lock_dir, exist_ok=True)
        lock_path = os.path.join(self.lock_dir, f"{domain}.lock")
        deadline = time.monotonic() + self.lock_timeout

        with open(lock_path, 'a') as handle:
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise ZoneLockedError(
                            f"Zone {domain} is locked by another operation"
                        )
                    time.sleep(self.LOCK_POLL_INTERVAL)

            logger.debug(f"Acquired lock for zone {domain}")
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
                logger.debug(f"Released lock for zone {domain}")

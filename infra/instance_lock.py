"""
Process and Cycle Locks

SingleInstanceLock: PID file keeping one scheduler process per user.
CycleLease: per-user lease file serializing trading cycles, so two triggers
for the same user (scheduler tick and a manual refresh, say) can never both
decide to open or close the same position.

Both are released on clean exit; a lease held by a crashed process expires
or is reclaimed once its PID is gone.
"""

import atexit
import json
import os
import re
import socket
import time
import uuid
from pathlib import Path
from typing import Optional
import logging

from core.exceptions import CycleInProgress

logger = logging.getLogger(__name__)


def _is_process_running(pid: int) -> bool:
    """Check if a process with given PID is running"""
    try:
        # Signal 0 only checks existence
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", value)


class SingleInstanceLock:
    """
    File-based single instance lock using PID files.

    Usage:
        lock = SingleInstanceLock("launch-trader-<user>")
        if not lock.acquire():
            sys.exit(1)
    """

    def __init__(self, name: str, lock_dir: str = "data"):
        self.name = _safe_name(name)
        self.lock_dir = Path(lock_dir)
        self.lock_file = self.lock_dir / f"{self.name}.pid"
        self.acquired = False

        self.lock_dir.mkdir(parents=True, exist_ok=True)
        atexit.register(self.release)

    def acquire(self) -> bool:
        """
        Returns:
            True if lock acquired, False if another instance is running
        """
        if self.acquired:
            logger.warning("Lock already acquired by this instance")
            return True

        if self.lock_file.exists():
            try:
                existing_pid = int(self.lock_file.read_text().strip())
                if _is_process_running(existing_pid) and existing_pid != os.getpid():
                    logger.error(
                        f"Another instance is running (PID={existing_pid}). "
                        f"Cannot start. Lock file: {self.lock_file}"
                    )
                    return False
                logger.warning(f"Found stale lock file (PID={existing_pid} not running), removing")
                self.lock_file.unlink()
            except (ValueError, OSError) as e:
                logger.warning(f"Invalid lock file, removing: {e}")
                self.lock_file.unlink(missing_ok=True)

        try:
            current_pid = os.getpid()
            self.lock_file.write_text(str(current_pid))
            self.acquired = True
            logger.info(f"Lock acquired (PID={current_pid}, file={self.lock_file})")
            return True
        except OSError as e:
            logger.error(f"Failed to create lock file: {e}")
            return False

    def release(self):
        if not self.acquired:
            return
        try:
            self.lock_file.unlink(missing_ok=True)
            logger.info(f"Lock released (file={self.lock_file})")
            self.acquired = False
        except OSError as e:
            logger.warning(f"Failed to release lock: {e}")

    def __enter__(self):
        if not self.acquire():
            raise RuntimeError(f"Failed to acquire lock for {self.name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class CycleLease:
    """
    Per-user advisory lease with expiry.

    The lease payload is written to a private temp file and hard-linked into
    place, so the lease file never exists without its content and only one
    holder can win the link. A lease whose holder PID is alive on this host
    is held regardless of its expiry. Leases from other hosts are trusted
    until `expires_at`; the holder pushes that forward with `renew()`.

    Usage:
        with CycleLease(user_id, lock_dir="data/locks", ttl_seconds=300) as lease:
            coordinator.run_cycle(user_id)
    """

    # An unreadable lease younger than this may belong to a writer on a
    # filesystem without hard links; leave it alone.
    UNREADABLE_GRACE_SECONDS = 30.0

    def __init__(self, user_id: str, lock_dir: str = "data/locks", ttl_seconds: float = 300.0):
        self.user_id = user_id
        self.lock_dir = Path(lock_dir)
        self.lock_file = self.lock_dir / f"cycle-{_safe_name(user_id)}.lease"
        self.ttl_seconds = float(ttl_seconds)
        self.token = uuid.uuid4().hex
        self.acquired = False
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def _payload(self) -> dict:
        now = time.time()
        return {
            "token": self.token,
            "user_id": self.user_id,
            "pid": os.getpid(),
            "host": socket.gethostname(),
            "acquired_at": now,
            "expires_at": now + self.ttl_seconds,
        }

    def _write_temp(self, payload: dict) -> Path:
        temp_path = self.lock_dir / f".{self.lock_file.name}.{self.token}.tmp"
        with open(temp_path, "w") as f:
            json.dump(payload, f)
            f.flush()
            os.fsync(f.fileno())
        return temp_path

    def _read(self) -> Optional[dict]:
        try:
            data = json.loads(self.lock_file.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _age_seconds(self) -> float:
        try:
            return time.time() - self.lock_file.stat().st_mtime
        except FileNotFoundError:
            return 0.0

    def _is_stale(self, lease: dict) -> bool:
        if not lease:
            return self._age_seconds() > self.UNREADABLE_GRACE_SECONDS
        pid = lease.get("pid")
        if lease.get("host") == socket.gethostname() and isinstance(pid, int):
            return not _is_process_running(pid)
        return float(lease.get("expires_at", 0)) <= time.time()

    def acquire(self) -> None:
        """
        Raises:
            CycleInProgress: a live lease is held by someone else
        """
        if self.acquired:
            return

        for _ in range(2):
            temp_path = self._write_temp(self._payload())
            try:
                os.link(str(temp_path), str(self.lock_file))
            except FileExistsError:
                lease = self._read()
                if lease is None:
                    continue
                if self._is_stale(lease):
                    logger.warning(f"Reclaiming stale cycle lease for {self.user_id}: {lease}")
                    self.lock_file.unlink(missing_ok=True)
                    continue
                raise CycleInProgress(self.user_id, holder=f"{lease.get('host')}:{lease.get('pid')}")
            finally:
                temp_path.unlink(missing_ok=True)

            self.acquired = True
            logger.debug(f"Cycle lease acquired for {self.user_id} ({self.lock_file})")
            return

        raise CycleInProgress(self.user_id)

    def renew(self) -> None:
        """
        Push the expiry forward by another ttl.

        Raises:
            CycleInProgress: the lease is no longer ours
        """
        lease = self._read()
        if not self.acquired or not lease or lease.get("token") != self.token:
            self.acquired = False
            raise CycleInProgress(self.user_id, holder="lost")
        lease["expires_at"] = time.time() + self.ttl_seconds
        temp_path = self._write_temp(lease)
        os.replace(temp_path, self.lock_file)

    def release(self) -> None:
        if not self.acquired:
            return
        lease = self._read()
        if lease and lease.get("token") == self.token:
            self.lock_file.unlink(missing_ok=True)
            logger.debug(f"Cycle lease released for {self.user_id}")
        else:
            logger.warning(f"Cycle lease for {self.user_id} was taken over before release")
        self.acquired = False

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

"""
Tests for the per-user cycle lease and the single-instance PID lock.
"""

import json
import os
import socket
import time

import pytest

from core.exceptions import CycleInProgress
from infra.instance_lock import CycleLease, SingleInstanceLock


@pytest.fixture
def lock_dir(tmp_path):
    return str(tmp_path / "locks")


def write_lease(lease: CycleLease, **overrides):
    now = time.time()
    payload = {
        "token": "other",
        "user_id": lease.user_id,
        "pid": os.getpid(),
        "host": socket.gethostname(),
        "acquired_at": now,
        "expires_at": now + 300,
    }
    payload.update(overrides)
    lease.lock_file.write_text(json.dumps(payload))


class TestCycleLease:
    def test_second_holder_is_refused(self, lock_dir):
        first = CycleLease("user-1", lock_dir=lock_dir)
        first.acquire()

        with pytest.raises(CycleInProgress) as exc_info:
            CycleLease("user-1", lock_dir=lock_dir).acquire()
        assert exc_info.value.user_id == "user-1"

        first.release()
        assert not first.lock_file.exists()

    def test_users_do_not_contend(self, lock_dir):
        with CycleLease("user-1", lock_dir=lock_dir):
            with CycleLease("user-2", lock_dir=lock_dir) as other:
                assert other.acquired

    def test_lease_file_contents(self, lock_dir):
        with CycleLease("user-1", lock_dir=lock_dir, ttl_seconds=60) as lease:
            data = json.loads(lease.lock_file.read_text())
        assert data["token"] == lease.token
        assert data["pid"] == os.getpid()
        assert data["expires_at"] - data["acquired_at"] == pytest.approx(60)

    def test_expired_lease_from_other_host_is_reclaimed(self, lock_dir):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        write_lease(lease, host="elsewhere", pid=1, expires_at=time.time() - 1)

        lease.acquire()

        assert lease.acquired
        assert json.loads(lease.lock_file.read_text())["token"] == lease.token

    def test_live_local_holder_is_respected_past_expiry(self, lock_dir):
        first = CycleLease("user-1", lock_dir=lock_dir, ttl_seconds=0.2)
        first.acquire()
        time.sleep(0.3)

        with pytest.raises(CycleInProgress):
            CycleLease("user-1", lock_dir=lock_dir).acquire()

        first.release()

    def test_dead_holder_is_reclaimed(self, lock_dir, monkeypatch):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        write_lease(lease, pid=424242)
        monkeypatch.setattr("infra.instance_lock._is_process_running", lambda pid: False)

        lease.acquire()

        assert lease.acquired

    def test_live_holder_on_other_host_is_respected(self, lock_dir):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        write_lease(lease, host="elsewhere", pid=1)

        with pytest.raises(CycleInProgress):
            lease.acquire()

    def test_fresh_unreadable_lease_is_held(self, lock_dir):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        lease.lock_file.write_text("")

        with pytest.raises(CycleInProgress):
            lease.acquire()
        assert lease.lock_file.exists()

    def test_old_corrupt_lease_is_reclaimed(self, lock_dir):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        lease.lock_file.write_text("{not json")
        old = time.time() - CycleLease.UNREADABLE_GRACE_SECONDS - 5
        os.utime(lease.lock_file, (old, old))

        lease.acquire()

        assert lease.acquired

    def test_acquire_leaves_no_temp_files(self, lock_dir):
        with CycleLease("user-1", lock_dir=lock_dir) as lease:
            assert [p.name for p in lease.lock_dir.iterdir()] == [lease.lock_file.name]

    def test_renew_extends_expiry(self, lock_dir):
        with CycleLease("user-1", lock_dir=lock_dir, ttl_seconds=60) as lease:
            before = json.loads(lease.lock_file.read_text())["expires_at"]
            time.sleep(0.01)
            lease.renew()
            data = json.loads(lease.lock_file.read_text())
        assert data["expires_at"] > before
        assert data["token"] == lease.token

    def test_renew_after_takeover_raises(self, lock_dir):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        lease.acquire()
        write_lease(lease, token="someone-else")

        with pytest.raises(CycleInProgress):
            lease.renew()
        assert not lease.acquired
        assert json.loads(lease.lock_file.read_text())["token"] == "someone-else"

    def test_release_leaves_a_taken_over_lease(self, lock_dir):
        lease = CycleLease("user-1", lock_dir=lock_dir)
        lease.acquire()
        write_lease(lease, token="someone-else")

        lease.release()

        assert lease.lock_file.exists()
        assert not lease.acquired

    def test_user_id_is_sanitized_in_file_name(self, lock_dir):
        lease = CycleLease("../evil/user", lock_dir=lock_dir)
        assert lease.lock_file.parent == lease.lock_dir
        assert "/" not in lease.lock_file.name


class TestSingleInstanceLock:
    def test_acquire_and_release(self, tmp_path):
        lock = SingleInstanceLock("launch-trader-user-1", lock_dir=str(tmp_path))
        assert lock.acquire()
        assert lock.lock_file.read_text() == str(os.getpid())
        lock.release()
        assert not lock.lock_file.exists()

    def test_running_pid_blocks(self, tmp_path, monkeypatch):
        lock = SingleInstanceLock("launch-trader-user-1", lock_dir=str(tmp_path))
        lock.lock_file.write_text("12345")
        monkeypatch.setattr("infra.instance_lock._is_process_running", lambda pid: True)

        assert not lock.acquire()

    def test_stale_pid_file_is_replaced(self, tmp_path, monkeypatch):
        lock = SingleInstanceLock("launch-trader-user-1", lock_dir=str(tmp_path))
        lock.lock_file.write_text("12345")
        monkeypatch.setattr("infra.instance_lock._is_process_running", lambda pid: False)

        assert lock.acquire()
        assert lock.lock_file.read_text() == str(os.getpid())

    def test_context_manager_raises_when_held(self, tmp_path, monkeypatch):
        lock = SingleInstanceLock("launch-trader-user-1", lock_dir=str(tmp_path))
        lock.lock_file.write_text("12345")
        monkeypatch.setattr("infra.instance_lock._is_process_running", lambda pid: True)

        with pytest.raises(RuntimeError):
            with lock:
                pass

"""Per-doctor mutual exclusion for slot map changes"""

from contextlib import contextmanager
from threading import Lock

_registry_lock = Lock()
_doctor_locks: dict[str, Lock] = {}


def _lock_for(doctor_id: str) -> Lock:
    with _registry_lock:
        lock = _doctor_locks.get(doctor_id)
        if lock is None:
            lock = Lock()
            _doctor_locks[doctor_id] = lock
        return lock


@contextmanager
def doctor_lock(doctor_id: str, timeout: float = 30.0):
    """
    Serialize booking and cancellation for one doctor within this process.

    Other processes are kept out by the row lock taken on the doctor record.
    Raises TimeoutError if the lock is not acquired within ``timeout`` seconds.
    """
    lock = _lock_for(doctor_id)
    if not lock.acquire(timeout=timeout):
        raise TimeoutError(f"Timed out waiting for doctor {doctor_id}")
    try:
        yield
    finally:
        lock.release()

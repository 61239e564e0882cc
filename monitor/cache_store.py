"""Durable cache of per-account snapshots, one whole-list entry per controller kind."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Iterator

import config
from trading.account_codec import AccountState, DCAState, PriceTradeState, ProtectionState
from trading.errors import AutomationError

try:  # pragma: no cover - platform specific
    import fcntl
except ImportError:  # pragma: no cover - platform specific
    fcntl = None  # type: ignore[assignment]

try:  # pragma: no cover - platform specific
    import msvcrt
except ImportError:  # pragma: no cover - platform specific
    msvcrt = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

E_STATE_LOCKED = "E_STATE_LOCKED"


class CacheLockError(AutomationError):
    """The cache lock file could not be acquired in time."""

    code = E_STATE_LOCKED


@dataclass
class CacheSnapshot:
    account_address: str
    kind: str
    last_checked: int | None = None
    last_triggered: int | None = None
    health_factor: int | None = None
    trigger_health_factor: int | None = None
    target_health_factor: int | None = None
    automation_enabled: bool | None = None
    interval_seconds: int | None = None
    token_address: str | None = None
    token_amount: int | None = None
    enabled: bool | None = None
    target_price: int | None = None
    last_price: float | None = None
    last_signature: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CacheSnapshot":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in raw.items() if key in known})

    def with_state(self, state: AccountState) -> "CacheSnapshot":
        if isinstance(state, ProtectionState):
            return replace(
                self,
                health_factor=state.health_factor,
                trigger_health_factor=state.trigger_health_factor,
                target_health_factor=state.target_health_factor,
                automation_enabled=state.automation_enabled,
            )
        if isinstance(state, DCAState):
            return replace(
                self,
                interval_seconds=state.interval_seconds,
                token_address=state.token_address,
                token_amount=state.token_amount,
                enabled=state.enabled,
            )
        if isinstance(state, PriceTradeState):
            return replace(
                self,
                target_price=state.target_price,
                token_address=state.token_address,
                token_amount=state.token_amount,
                enabled=state.enabled,
            )
        raise TypeError(f"unsupported account state: {type(state).__name__}")


class CacheStore:
    def get(self, key: str) -> list[CacheSnapshot] | None:
        raise NotImplementedError

    def set(self, key: str, snapshots: list[CacheSnapshot]) -> None:
        raise NotImplementedError


class MemoryCacheStore(CacheStore):
    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}
        self.writes = 0

    def get(self, key: str) -> list[CacheSnapshot] | None:
        rows = self._data.get(key)
        if rows is None:
            return None
        return [CacheSnapshot.from_dict(row) for row in rows]

    def set(self, key: str, snapshots: list[CacheSnapshot]) -> None:
        self._data[key] = [snap.to_dict() for snap in snapshots]
        self.writes += 1


def _try_lock(handle: Any) -> None:
    if os.name == "nt" and msvcrt is not None:  # pragma: no cover - windows-only runtime path
        handle.seek(0)
        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as exc:
            raise BlockingIOError(str(exc)) from exc
        return
    if fcntl is not None:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            raise BlockingIOError(str(exc)) from exc


def _unlock(handle: Any) -> None:
    if os.name == "nt" and msvcrt is not None:  # pragma: no cover - windows-only runtime path
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        return
    if fcntl is not None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def cache_file_lock(path: str, *, timeout_seconds: float, poll_seconds: float = 0.05) -> Iterator[None]:
    """Inter-process lock on ``<path>.lock``."""
    lock_path = f"{path}.lock"
    os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
    deadline = time.monotonic() + max(0.05, float(timeout_seconds))
    handle = open(lock_path, "a+b")
    locked = False
    try:
        handle.seek(0, os.SEEK_END)
        if handle.tell() == 0:
            # msvcrt locks a byte range, so the file needs at least one byte.
            handle.write(b"0")
            handle.flush()
        handle.seek(0)
        while True:
            try:
                _try_lock(handle)
                locked = True
                break
            except BlockingIOError as exc:
                if time.monotonic() >= deadline:
                    raise CacheLockError(f"{E_STATE_LOCKED}: cache lock timeout path={path}") from exc
                time.sleep(poll_seconds)
        yield
    finally:
        if locked:
            try:
                _unlock(handle)
            except OSError:
                pass
        handle.close()


def _atomic_write_json(path: str, payload: Any) -> None:
    target_dir = os.path.dirname(path) or "."
    os.makedirs(target_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f"{os.path.basename(path)}.", suffix=".tmp", dir=target_dir, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


class JsonFileCacheStore(CacheStore):
    """JSON document ``{key: [snapshot, ...]}`` written atomically under a lock file."""

    def __init__(self, path: str | None = None, *, lock_timeout_seconds: float | None = None) -> None:
        self.path = str(path or config.AUTOMATION_CACHE_FILE)
        self.lock_timeout_seconds = float(
            lock_timeout_seconds if lock_timeout_seconds is not None else config.CACHE_LOCK_TIMEOUT_SECONDS
        )

    def _read_document(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8-sig") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("CACHE_READ_FAILED path=%s err=%s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("CACHE_READ_FAILED path=%s err=unexpected_root_type", self.path)
            return {}
        return payload

    def get(self, key: str) -> list[CacheSnapshot] | None:
        with cache_file_lock(self.path, timeout_seconds=self.lock_timeout_seconds):
            rows = self._read_document().get(key)
        if not isinstance(rows, list):
            return None
        snapshots: list[CacheSnapshot] = []
        for row in rows:
            if not isinstance(row, dict) or not row.get("account_address"):
                logger.warning("CACHE_ROW_SKIPPED key=%s row=%r", key, row)
                continue
            try:
                snapshots.append(CacheSnapshot.from_dict(row))
            except TypeError as exc:
                logger.warning("CACHE_ROW_SKIPPED key=%s err=%s", key, exc)
        return snapshots

    def set(self, key: str, snapshots: list[CacheSnapshot]) -> None:
        with cache_file_lock(self.path, timeout_seconds=self.lock_timeout_seconds):
            document = self._read_document()
            document[key] = [snap.to_dict() for snap in snapshots]
            _atomic_write_json(self.path, document)

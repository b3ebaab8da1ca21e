"""
Per-school generation leases.

At most one generation may run per school. A worker acquires a lease (an
owner token with an expiry) before it starts and releases it when it is
done; a second acquire for the same school is rejected with
ConcurrentGenerationError until the lease is released or expires.

Expiry uses wall-clock time so a file lease outlives the process that took
it; an expired lease (crashed worker) may be taken over.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from .errors import ConcurrentGenerationError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 900.0


@dataclass(frozen=True)
class Lease:
    school_id: str
    owner: str
    acquired_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class LeaseStore(ABC):
    """
    Lease bookkeeping shared by the in-memory and file-backed stores.

    Subclasses only read, write and delete lease records; the
    acquire/release rules live here.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._lock = threading.Lock()

    def acquire(self, school_id: str, owner: Optional[str] = None) -> Lease:
        """
        Take the lease of a school.

        Args:
            school_id: School to lock
            owner: Owner token; a random one is generated when omitted

        Returns:
            The new lease

        Raises:
            ConcurrentGenerationError: if a live lease is held by someone else
        """
        owner = owner or uuid.uuid4().hex
        with self._lock:
            now = self.clock()
            lease = Lease(school_id, owner, now, now + self.ttl_seconds)
            if self._create(lease):
                logger.info("Lease on school %s acquired by %s", school_id, owner)
                return lease

            held = self._read(school_id)
            if held is not None and not held.expired(now):
                raise ConcurrentGenerationError(school_id, held.owner, held.expires_at)

            if held is not None:
                logger.warning(
                    "Taking over expired lease on school %s from %s", school_id, held.owner
                )
            self._write(lease)
            return lease

    def release(self, lease: Lease) -> bool:
        """
        Give a lease back.

        Returns:
            False if the lease had already been taken over by another owner
        """
        with self._lock:
            held = self._read(lease.school_id)
            if held is None or held.owner != lease.owner:
                logger.warning("Lease on school %s no longer held by %s", lease.school_id, lease.owner)
                return False
            self._delete(lease.school_id)
        logger.info("Lease on school %s released by %s", lease.school_id, lease.owner)
        return True

    def renew(self, lease: Lease) -> Lease:
        """
        Extend a held lease by the store's TTL.

        Raises:
            ConcurrentGenerationError: if the lease was lost to another owner
        """
        with self._lock:
            held = self._read(lease.school_id)
            if held is None or held.owner != lease.owner:
                raise ConcurrentGenerationError(
                    lease.school_id,
                    held.owner if held else None,
                    held.expires_at if held else None,
                )
            renewed = Lease(lease.school_id, lease.owner, lease.acquired_at, self.clock() + self.ttl_seconds)
            self._write(renewed)
            return renewed

    def current(self, school_id: str) -> Optional[Lease]:
        """The live lease of a school, if any."""
        with self._lock:
            held = self._read(school_id)
        if held is None or held.expired(self.clock()):
            return None
        return held

    @contextmanager
    def hold(self, school_id: str, owner: Optional[str] = None) -> Iterator[Lease]:
        lease = self.acquire(school_id, owner)
        try:
            yield lease
        finally:
            self.release(lease)

    @abstractmethod
    def _create(self, lease: Lease) -> bool:
        """Store the lease only if none is recorded; True if stored."""

    @abstractmethod
    def _read(self, school_id: str) -> Optional[Lease]:
        ...

    @abstractmethod
    def _write(self, lease: Lease) -> None:
        ...

    @abstractmethod
    def _delete(self, school_id: str) -> None:
        ...


class InMemoryLeaseStore(LeaseStore):
    """Leases for a single process."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        super().__init__(ttl_seconds, clock)
        self._leases: dict[str, Lease] = {}

    def _create(self, lease: Lease) -> bool:
        if lease.school_id in self._leases:
            return False
        self._leases[lease.school_id] = lease
        return True

    def _read(self, school_id: str) -> Optional[Lease]:
        return self._leases.get(school_id)

    def _write(self, lease: Lease) -> None:
        self._leases[lease.school_id] = lease

    def _delete(self, school_id: str) -> None:
        self._leases.pop(school_id, None)


class FileLeaseStore(LeaseStore):
    """
    One JSON lease file per school in a directory.

    Every record is written to a temporary file first. Creation publishes
    it with a hard link, which fails if the lease file exists, so a reader
    never sees a half-written lease; takeovers and renewals are atomic
    renames.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl_seconds, clock)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, school_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", school_id)
        return self.directory / f"{safe}.lease.json"

    def _create(self, lease: Lease) -> bool:
        tmp = self._write_temp(lease)
        try:
            os.link(tmp, self._path(lease.school_id))
        except FileExistsError:
            return False
        finally:
            tmp.unlink(missing_ok=True)
        return True

    def _read(self, school_id: str) -> Optional[Lease]:
        path = self._path(school_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError):
            # Written by something else; live until a TTL past its last change
            logger.warning("Unreadable lease file %s", path)
            try:
                changed = path.stat().st_mtime
            except FileNotFoundError:
                return None
            return Lease(school_id, "", changed, changed + self.ttl_seconds)
        return Lease(
            school_id=data["school_id"],
            owner=data["owner"],
            acquired_at=float(data["acquired_at"]),
            expires_at=float(data["expires_at"]),
        )

    def _write(self, lease: Lease) -> None:
        tmp = self._write_temp(lease)
        try:
            os.replace(tmp, self._path(lease.school_id))
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def _write_temp(self, lease: Lease) -> Path:
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(asdict(lease), f)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return Path(tmp)

    def _delete(self, school_id: str) -> None:
        self._path(school_id).unlink(missing_ok=True)

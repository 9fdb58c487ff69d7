"""libvirt connection ownership and endpoint fallback for vmctl."""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

try:
    import libvirt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit(f"libvirt python bindings not available: {exc}")

from vmctl.constants import DEFAULT_ENDPOINTS
from vmctl.exceptions import (
    ConnectionClosedError,
    HypervisorConnectionError,
    ManagerError,
    NotFoundError,
)
from vmctl.models import ControllerConfig, DomainHandle
from vmctl.utils import log

Opener = Callable[[str], "libvirt.virConnect"]

_connection_ids = itertools.count(1)


def is_missing_domain(exc: Exception) -> bool:
    """True when a libvirt error means the domain no longer exists."""
    get_code = getattr(exc, "get_error_code", None)
    if get_code is None:
        return False
    return get_code() == libvirt.VIR_ERR_NO_DOMAIN


def silence_libvirt_errors() -> None:
    """Route libvirt's default stderr error printing through our logger."""

    def _handler(_ctx, err) -> None:
        message = err[2] if isinstance(err, (list, tuple)) and len(err) > 2 else err
        log("DEBUG", f"libvirt: {message}")

    libvirt.registerErrorHandler(_handler, None)


class Connection:
    """An open libvirt connection plus the registry of domains handed out on it.

    Handles are only honoured by the connection that issued them and only
    while it is open. Not safe for concurrent use; give each thread its own.
    """

    def __init__(self, uri: str, conn: "libvirt.virConnect") -> None:
        self.uri = uri
        self.connection_id = next(_connection_ids)
        self._conn: Optional["libvirt.virConnect"] = conn
        self._domains: Dict[int, "libvirt.virDomain"] = {}
        self._handle_ids = itertools.count(1)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Connection {self.uri} ({state})>"

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.closed:
            self.release()

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def raw(self) -> "libvirt.virConnect":
        return self._ensure_open()

    def _ensure_open(self) -> "libvirt.virConnect":
        if self._conn is None:
            raise ConnectionClosedError(f"Connection to {self.uri} has been released")
        return self._conn

    def register(self, name: str, domain: "libvirt.virDomain") -> DomainHandle:
        self._ensure_open()
        handle_id = next(self._handle_ids)
        self._domains[handle_id] = domain
        return DomainHandle(name=name, handle_id=handle_id, connection_id=self.connection_id)

    def resolve(self, handle: DomainHandle) -> "libvirt.virDomain":
        if self._conn is None:
            raise NotFoundError(handle.name, f"connection to {self.uri} released")
        if handle.connection_id != self.connection_id:
            raise NotFoundError(handle.name, f"handle belongs to another connection (not {self.uri})")
        try:
            return self._domains[handle.handle_id]
        except KeyError:
            raise NotFoundError(handle.name, "stale handle") from None

    def forget(self, handle: DomainHandle) -> None:
        if handle.connection_id == self.connection_id:
            self._domains.pop(handle.handle_id, None)

    def release(self) -> None:
        conn = self._ensure_open()
        self._conn = None
        self._domains.clear()
        try:
            conn.close()
        except libvirt.libvirtError as exc:
            raise ManagerError(f"Error while closing connection to {self.uri}: {exc}") from exc
        log("DEBUG", f"Released connection to {self.uri}")


class ConnectionManager:
    def __init__(self, endpoints: Sequence[str] = DEFAULT_ENDPOINTS, opener: Optional[Opener] = None) -> None:
        self.endpoints = tuple(endpoints)
        self._opener = opener

    @classmethod
    def from_config(cls, config: ControllerConfig, opener: Optional[Opener] = None) -> "ConnectionManager":
        return cls(config.endpoints, opener=opener)

    def _open(self, uri: str) -> "libvirt.virConnect":
        opener = self._opener or libvirt.open
        return opener(uri)

    def connect(self, endpoints: Optional[Sequence[str]] = None) -> Connection:
        """Open the first endpoint that accepts; each is tried exactly once."""
        candidates = tuple(endpoints) if endpoints is not None else self.endpoints
        attempted: List[Tuple[str, str]] = []
        for uri in candidates:
            try:
                conn = self._open(uri)
            except libvirt.libvirtError as exc:
                cause = str(exc)
            else:
                if conn is not None:
                    log("SUCCESS", f"Connected to libvirt ({uri})")
                    return Connection(uri, conn)
                cause = "open returned no connection"
            log("WARN", f"Failed to connect to {uri}: {cause}")
            attempted.append((uri, cause))
        raise HypervisorConnectionError(attempted)

    @staticmethod
    def release(connection: Connection) -> None:
        connection.release()

    @contextmanager
    def session(self, endpoints: Optional[Sequence[str]] = None) -> Iterator[Connection]:
        connection = self.connect(endpoints)
        try:
            yield connection
        finally:
            if not connection.closed:
                connection.release()

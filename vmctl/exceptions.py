"""Custom exceptions for vmctl."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Sequence, Tuple


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class HypervisorConnectionError(ManagerError):
    """Every candidate endpoint refused the connection."""

    def __init__(self, attempted: Sequence[Tuple[str, str]]) -> None:
        self.attempted: List[Tuple[str, str]] = list(attempted)
        if self.attempted:
            details = "; ".join(f"{uri}: {cause}" for uri, cause in self.attempted)
            message = f"Failed to connect to libvirt ({details})"
        else:
            message = "Failed to connect to libvirt (no endpoints configured)"
        super().__init__(message)


class ConnectionClosedError(ManagerError):
    """The connection was already released."""


class EmulatorNotFoundError(ManagerError):
    def __init__(self, binary: str, searched: Sequence[Path]) -> None:
        self.binary = binary
        self.searched = list(searched)
        locations = ", ".join(str(path) for path in self.searched) or "<none>"
        super().__init__(f"Emulator '{binary}' not found (searched: {locations}; PATH lookup failed)")


class ValidationError(ManagerError):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class DefinitionError(ManagerError):
    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Failed to define domain '{name}': {message}")


class LifecycleFailure(Enum):
    ALREADY_RUNNING = "already running"
    INVALID_STATE = "invalid state"
    DAEMON_REJECTED = "rejected by daemon"
    STILL_RUNNING = "still running"


class LifecycleError(ManagerError):
    """A state transition was refused, either locally or by the daemon."""

    def __init__(self, name: str, transition: str, reason: LifecycleFailure, detail: str = "") -> None:
        self.name = name
        self.transition = transition
        self.reason = reason
        message = f"Cannot {transition} domain '{name}': {reason.value}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class NotFoundError(ManagerError):
    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        message = f"Domain '{name}' not found"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class ListError(ManagerError):
    """Enumerating domains failed."""


class StateQueryError(ManagerError):
    """The daemon failed to report a domain's state."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        super().__init__(f"Failed to query state of '{name}': {detail}")

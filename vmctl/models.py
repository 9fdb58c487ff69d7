"""Data models for vmctl."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Tuple

from vmctl.constants import (
    DEFAULT_ARCH,
    DEFAULT_EMULATOR_PATHS,
    DEFAULT_ENDPOINTS,
    DEFAULT_NETWORK,
    EMULATOR_BINARY,
    SYSTEM_IMAGES_DIR,
    USER_IMAGES_SUBDIR,
    VIR_DOMAIN_BLOCKED,
    VIR_DOMAIN_CRASHED,
    VIR_DOMAIN_PAUSED,
    VIR_DOMAIN_RUNNING,
    VIR_DOMAIN_SHUTDOWN,
    VIR_DOMAIN_SHUTOFF,
)
from vmctl.exceptions import ValidationError


class DomainType(Enum):
    """Hypervisor driver a domain runs under; the value is the XML tag."""

    QEMU = "qemu"
    KVM = "kvm"

    @property
    def tag(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> "DomainType":
        normalized = raw.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        choices = ", ".join(member.value for member in cls)
        raise ValidationError("domain type", f"'{raw}' (expected one of: {choices})")


class DomainState(Enum):
    RUNNING = "Running"
    BLOCKED = "Blocked"
    PAUSED = "Paused"
    SHUTDOWN = "Shutdown"
    SHUTOFF = "Shutoff"
    CRASHED = "Crashed"
    UNKNOWN = "Unknown"

    @property
    def is_active(self) -> bool:
        return self in _ACTIVE_STATES

    def __str__(self) -> str:
        return self.value


_ACTIVE_STATES = frozenset(
    {DomainState.RUNNING, DomainState.BLOCKED, DomainState.PAUSED, DomainState.SHUTDOWN}
)

_STATE_CODES = {
    VIR_DOMAIN_RUNNING: DomainState.RUNNING,
    VIR_DOMAIN_BLOCKED: DomainState.BLOCKED,
    VIR_DOMAIN_PAUSED: DomainState.PAUSED,
    VIR_DOMAIN_SHUTDOWN: DomainState.SHUTDOWN,
    VIR_DOMAIN_SHUTOFF: DomainState.SHUTOFF,
    VIR_DOMAIN_CRASHED: DomainState.CRASHED,
}


def map_state(code: object) -> DomainState:
    """Map a raw daemon state code to a DomainState; never raises."""
    try:
        return _STATE_CODES.get(int(code), DomainState.UNKNOWN)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DomainState.UNKNOWN


@dataclass(frozen=True)
class DomainDescriptor:
    name: str
    domain_type: DomainType
    memory_mib: int
    vcpus: int
    emulator_path: Path
    disk_path: Path
    arch: str = DEFAULT_ARCH
    network: str = DEFAULT_NETWORK


@dataclass(frozen=True)
class DomainHandle:
    """Reference to a domain registered on one specific Connection."""

    name: str
    handle_id: int
    connection_id: int


class DomainSummary(NamedTuple):
    name: str
    state: DomainState
    memory_mib: int


@dataclass
class ControllerConfig:
    endpoints: Tuple[str, ...] = DEFAULT_ENDPOINTS
    emulator_paths: List[Path] = field(default_factory=lambda: list(DEFAULT_EMULATOR_PATHS))
    emulator_binary: str = EMULATOR_BINARY
    system_images_dir: Path = SYSTEM_IMAGES_DIR
    user_images_subdir: Path = USER_IMAGES_SUBDIR
    arch: str = DEFAULT_ARCH
    network: str = DEFAULT_NETWORK

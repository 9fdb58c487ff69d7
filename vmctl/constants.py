"""Global constants and path configuration for vmctl."""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_CONFIG_PATH = Path("/etc/vmctl/config.yaml")

# System-wide daemon first, then the per-user session daemon.
DEFAULT_ENDPOINTS = ("qemu:///system", "qemu:///session")

EMULATOR_BINARY = "qemu-system-x86_64"
DEFAULT_EMULATOR_PATHS = (
    Path("/opt/homebrew/bin/qemu-system-x86_64"),  # Homebrew (Apple Silicon)
    Path("/usr/local/bin/qemu-system-x86_64"),  # Homebrew (Intel) / source builds
    Path("/usr/bin/qemu-system-x86_64"),
)

SYSTEM_IMAGES_DIR = Path("/var/lib/libvirt/images")
USER_IMAGES_SUBDIR = Path(".local/share/libvirt/images")
DISK_FORMAT = "qcow2"

DEFAULT_ARCH = "x86_64"
DEFAULT_NETWORK = "default"

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

KIB_PER_MIB = 1024

# virDomainState codes as reported by virDomainGetInfo / virDomainGetState.
VIR_DOMAIN_NOSTATE = 0
VIR_DOMAIN_RUNNING = 1
VIR_DOMAIN_BLOCKED = 2
VIR_DOMAIN_PAUSED = 3
VIR_DOMAIN_SHUTDOWN = 4
VIR_DOMAIN_SHUTOFF = 5
VIR_DOMAIN_CRASHED = 6
VIR_DOMAIN_PMSUSPENDED = 7

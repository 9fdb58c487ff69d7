"""Shared test fixtures: fake libvirt domains and connections."""

from __future__ import annotations

from typing import Optional
from unittest.mock import MagicMock
from xml.etree.ElementTree import fromstring

import libvirt
import pytest

from vmctl.connection import Connection
from vmctl.constants import VIR_DOMAIN_RUNNING, VIR_DOMAIN_SHUTOFF


def make_libvirt_error(message: str, code: Optional[int] = None) -> libvirt.libvirtError:
    """Build a libvirtError whose get_error_code() returns ``code``."""
    exc = libvirt.libvirtError(message)
    if code is None:
        exc.err = None
    else:
        exc.err = (code, 0, message, 2, None, None, None, 0, 0)
    return exc


class FakeDomain:
    """In-memory stand-in for libvirt.virDomain with daemon-like rules."""

    def __init__(self, name: str, state: int = VIR_DOMAIN_SHUTOFF, memory_kib: int = 1024 * 1024) -> None:
        self._name = name
        self.code = state
        self.memory_kib = memory_kib
        self.undefined = False
        self.calls = []

    def _check(self) -> None:
        if self.undefined:
            raise make_libvirt_error(f"Domain not found: '{self._name}'", libvirt.VIR_ERR_NO_DOMAIN)

    def name(self) -> str:
        return self._name

    def state(self, flags: int = 0):
        self._check()
        return [self.code, 0]

    def info(self):
        self._check()
        return [self.code, self.memory_kib, self.memory_kib, 2, 0]

    def isActive(self) -> int:
        self._check()
        return int(self.code != VIR_DOMAIN_SHUTOFF)

    def create(self) -> int:
        self._check()
        self.calls.append("create")
        if self.code != VIR_DOMAIN_SHUTOFF:
            raise make_libvirt_error("Requested operation is not valid: domain is already running")
        self.code = VIR_DOMAIN_RUNNING
        return 0

    def shutdown(self) -> int:
        self._check()
        self.calls.append("shutdown")
        if self.code == VIR_DOMAIN_SHUTOFF:
            raise make_libvirt_error("Requested operation is not valid: domain is not running")
        return 0

    def destroy(self) -> int:
        self._check()
        self.calls.append("destroy")
        if self.code == VIR_DOMAIN_SHUTOFF:
            raise make_libvirt_error("Requested operation is not valid: domain is not running")
        self.code = VIR_DOMAIN_SHUTOFF
        return 0

    def undefine(self) -> int:
        self._check()
        self.calls.append("undefine")
        self.undefined = True
        return 0


class FakeDaemon:
    """Minimal virConnect replacement keeping a name -> FakeDomain registry."""

    def __init__(self) -> None:
        self.domains = {}
        self.defined_xml = []
        self.closed = False

    def add(self, name: str, state: int = VIR_DOMAIN_SHUTOFF, memory_kib: int = 1024 * 1024) -> FakeDomain:
        domain = FakeDomain(name, state, memory_kib)
        self.domains[name] = domain
        return domain

    def lookupByName(self, name: str) -> FakeDomain:
        domain = self.domains.get(name)
        if domain is None or domain.undefined:
            raise make_libvirt_error(f"Domain not found: no domain with matching name '{name}'", libvirt.VIR_ERR_NO_DOMAIN)
        return domain

    def defineXML(self, xml: str) -> FakeDomain:
        name = fromstring(xml).findtext("name")
        existing = self.domains.get(name)
        if existing is not None and not existing.undefined:
            raise make_libvirt_error(f"operation failed: domain '{name}' already exists")
        self.defined_xml.append(xml)
        return self.add(name)

    def listAllDomains(self, flags: int = 0):
        return [domain for domain in self.domains.values() if not domain.undefined]

    def close(self) -> int:
        self.closed = True
        return 0


@pytest.fixture
def daemon() -> FakeDaemon:
    return FakeDaemon()


@pytest.fixture
def connection(daemon) -> Connection:
    return Connection("qemu:///system", daemon)


@pytest.fixture
def mock_conn() -> MagicMock:
    return MagicMock()


# All environment variables that parse_env() reads; used to ensure a clean slate.
_PARSE_ENV_VARS = [
    "VMCTL_CONFIG",
    "LIBVIRT_URI",
    "LIBVIRT_URIS",
    "EMULATOR_PATHS",
    "EMULATOR_BINARY",
    "IMAGES_DIR",
    "GUEST_ARCH",
    "GUEST_NETWORK",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear every variable parse_env() reads and point the default config file at nothing."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    import vmctl.config as config_module

    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")


@pytest.fixture
def libvirt_error():
    """Factory fixture for libvirtError instances with a chosen error code."""
    return make_libvirt_error

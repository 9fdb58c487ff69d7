"""Domain lookup, state queries and listing for vmctl."""

from __future__ import annotations

from typing import List

try:
    import libvirt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit(f"libvirt python bindings not available: {exc}")

from vmctl.connection import Connection, is_missing_domain
from vmctl.constants import KIB_PER_MIB
from vmctl.exceptions import ListError, NotFoundError, StateQueryError
from vmctl.models import DomainHandle, DomainState, DomainSummary, map_state
from vmctl.utils import log


class StateInspector:
    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    def lookup(self, name: str) -> DomainHandle:
        try:
            domain = self.connection.raw.lookupByName(name)
        except libvirt.libvirtError as exc:
            raise NotFoundError(name, str(exc)) from exc
        if domain is None:
            raise NotFoundError(name)
        return self.connection.register(name, domain)

    def get_state(self, handle: DomainHandle) -> DomainState:
        domain = self.connection.resolve(handle)
        try:
            code, _reason = domain.state()
        except libvirt.libvirtError as exc:
            if is_missing_domain(exc):
                self.connection.forget(handle)
                raise NotFoundError(handle.name, str(exc)) from exc
            raise StateQueryError(handle.name, str(exc)) from exc
        return map_state(code)

    def list(self) -> List[DomainSummary]:
        """Snapshot every domain on the connection, active or not.

        Domains that disappear while the snapshot is being taken are left out.
        """
        try:
            domains = self.connection.raw.listAllDomains(0)
        except libvirt.libvirtError as exc:
            raise ListError(f"Failed to list domains on {self.connection.uri}: {exc}") from exc

        summaries: List[DomainSummary] = []
        for domain in domains or []:
            try:
                name = domain.name()
                info = domain.info()
            except libvirt.libvirtError as exc:
                if is_missing_domain(exc):
                    log("DEBUG", f"Domain vanished while listing: {exc}")
                    continue
                raise ListError(f"Failed to read domain info: {exc}") from exc
            summaries.append(DomainSummary(name, map_state(info[0]), int(info[2]) // KIB_PER_MIB))
        log("DEBUG", f"Found {len(summaries)} domains on {self.connection.uri}")
        return summaries

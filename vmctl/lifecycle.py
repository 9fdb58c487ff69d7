"""Domain lifecycle transitions for vmctl."""

from __future__ import annotations

from typing import Callable, Optional

try:
    import libvirt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit(f"libvirt python bindings not available: {exc}")

from vmctl.connection import Connection, is_missing_domain
from vmctl.descriptor import render_domain_xml
from vmctl.exceptions import (
    DefinitionError,
    LifecycleError,
    LifecycleFailure,
    NotFoundError,
    StateQueryError,
)
from vmctl.inspector import StateInspector
from vmctl.models import DomainDescriptor, DomainHandle, DomainState
from vmctl.utils import log

_RUNNING_STATES = frozenset({DomainState.RUNNING, DomainState.BLOCKED, DomainState.PAUSED})
_STOPPABLE_STATES = frozenset({DomainState.RUNNING, DomainState.BLOCKED})


class LifecycleController:
    """Drives define → start → stop/destroy → undefine against one connection.

    Every call blocks until libvirtd answers. State preconditions are checked
    locally first; whatever the daemon still refuses is surfaced as a
    LifecycleError with reason DAEMON_REJECTED.
    """

    def __init__(self, connection: Connection, inspector: Optional[StateInspector] = None) -> None:
        self.connection = connection
        self.inspector = inspector or StateInspector(connection)

    def _domain_exists(self, name: str) -> bool:
        try:
            return self.connection.raw.lookupByName(name) is not None
        except libvirt.libvirtError as exc:
            if is_missing_domain(exc):
                return False
            raise DefinitionError(name, f"lookup failed: {exc}") from exc

    def define(self, descriptor: DomainDescriptor) -> DomainHandle:
        name = descriptor.name
        if self._domain_exists(name):
            raise DefinitionError(name, "a domain with this name already exists")

        xml = render_domain_xml(descriptor)
        log("DEBUG", f"Domain XML for {name}:\n{xml}")
        try:
            domain = self.connection.raw.defineXML(xml)
        except libvirt.libvirtError as exc:
            raise DefinitionError(name, str(exc)) from exc
        if domain is None:
            raise DefinitionError(name, "libvirt returned no domain")
        log("SUCCESS", f"Defined domain {name}")
        return self.connection.register(name, domain)

    def _current_state(self, handle: DomainHandle, transition: str) -> DomainState:
        try:
            return self.inspector.get_state(handle)
        except StateQueryError as exc:
            raise LifecycleError(handle.name, transition, LifecycleFailure.DAEMON_REJECTED, str(exc)) from exc

    def _call(self, handle: DomainHandle, transition: str, action: Callable[["libvirt.virDomain"], object]) -> None:
        domain = self.connection.resolve(handle)
        try:
            action(domain)
        except libvirt.libvirtError as exc:
            if is_missing_domain(exc):
                self.connection.forget(handle)
                raise NotFoundError(handle.name, str(exc)) from exc
            raise LifecycleError(handle.name, transition, LifecycleFailure.DAEMON_REJECTED, str(exc)) from exc

    def start(self, handle: DomainHandle) -> None:
        state = self._current_state(handle, "start")
        if state in _RUNNING_STATES:
            raise LifecycleError(handle.name, "start", LifecycleFailure.ALREADY_RUNNING, f"state is {state}")
        if state is not DomainState.SHUTOFF:
            raise LifecycleError(handle.name, "start", LifecycleFailure.INVALID_STATE, f"state is {state}")
        self._call(handle, "start", lambda domain: domain.create())
        log("SUCCESS", f"Domain {handle.name} started")

    def stop(self, handle: DomainHandle) -> None:
        """Ask the guest to shut down; returns once the request is delivered.

        Poll StateInspector.get_state for SHUTOFF if completion matters.
        """
        state = self._current_state(handle, "stop")
        if state not in _STOPPABLE_STATES:
            raise LifecycleError(handle.name, "stop", LifecycleFailure.INVALID_STATE, f"state is {state}")
        self._call(handle, "stop", lambda domain: domain.shutdown())
        log("INFO", f"Shutdown requested for domain {handle.name}")

    def destroy(self, handle: DomainHandle, ignore_inactive: bool = False) -> None:
        """Force the domain off.

        With ``ignore_inactive`` a domain that is already off is left alone;
        otherwise the daemon's refusal is raised like any other failure.
        """
        if ignore_inactive:
            state = self._current_state(handle, "destroy")
            if not state.is_active:
                log("INFO", f"Domain {handle.name} is not running ({state}); nothing to destroy")
                return
        self._call(handle, "destroy", lambda domain: domain.destroy())
        log("SUCCESS", f"Domain {handle.name} destroyed")

    def undefine(self, handle: DomainHandle) -> None:
        state = self._current_state(handle, "undefine")
        if state.is_active:
            raise LifecycleError(handle.name, "undefine", LifecycleFailure.STILL_RUNNING, f"state is {state}")
        if state is not DomainState.SHUTOFF:
            raise LifecycleError(handle.name, "undefine", LifecycleFailure.INVALID_STATE, f"state is {state}")
        self._call(handle, "undefine", lambda domain: domain.undefine())
        self.connection.forget(handle)
        log("SUCCESS", f"Domain {handle.name} undefined")

    def ensure_absent(self, name: str) -> bool:
        """Destroy (if running) and undefine ``name``; False if it did not exist."""
        try:
            handle = self.inspector.lookup(name)
        except NotFoundError:
            log("INFO", f"Domain {name} is not defined")
            return False
        self.destroy(handle, ignore_inactive=True)
        self.undefine(handle)
        return True

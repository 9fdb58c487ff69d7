"""Tests for vmctl.lifecycle module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import libvirt
import pytest

from vmctl.connection import Connection
from vmctl.constants import (
    VIR_DOMAIN_CRASHED,
    VIR_DOMAIN_PAUSED,
    VIR_DOMAIN_RUNNING,
    VIR_DOMAIN_SHUTDOWN,
    VIR_DOMAIN_SHUTOFF,
)
from vmctl.descriptor import build_descriptor
from vmctl.exceptions import (
    DefinitionError,
    LifecycleError,
    LifecycleFailure,
    NotFoundError,
)
from vmctl.inspector import StateInspector
from vmctl.lifecycle import LifecycleController
from vmctl.models import DomainState, DomainType


@pytest.fixture
def descriptor():
    return build_descriptor(
        "test-vm",
        DomainType.KVM,
        1024,
        2,
        Path("/usr/bin/qemu-system-x86_64"),
        Path("/var/lib/libvirt/images/test-vm.qcow2"),
    )


@pytest.fixture
def controller(connection):
    return LifecycleController(connection)


def _state(connection, handle):
    return StateInspector(connection).get_state(handle)


class TestDefine:
    def test_defines_without_starting(self, controller, connection, daemon, descriptor):
        handle = controller.define(descriptor)

        assert handle.name == "test-vm"
        assert "<name>test-vm</name>" in daemon.defined_xml[0]
        assert _state(connection, handle) is DomainState.SHUTOFF
        assert daemon.domains["test-vm"].calls == []

    def test_name_collision(self, controller, daemon, descriptor):
        daemon.add("test-vm")
        with pytest.raises(DefinitionError, match="already exists"):
            controller.define(descriptor)
        assert daemon.defined_xml == []

    def test_daemon_rejects_document(self, mock_conn, descriptor, libvirt_error):
        mock_conn.lookupByName.side_effect = libvirt_error("no domain", libvirt.VIR_ERR_NO_DOMAIN)
        mock_conn.defineXML.side_effect = libvirt_error("XML error: unsupported configuration")
        controller = LifecycleController(Connection("qemu:///system", mock_conn))
        with pytest.raises(DefinitionError, match="unsupported configuration") as exc:
            controller.define(descriptor)
        assert exc.value.name == "test-vm"

    def test_race_lost_at_daemon(self, mock_conn, descriptor, libvirt_error):
        mock_conn.lookupByName.side_effect = libvirt_error("no domain", libvirt.VIR_ERR_NO_DOMAIN)
        mock_conn.defineXML.side_effect = libvirt_error("operation failed: domain 'test-vm' already exists")
        controller = LifecycleController(Connection("qemu:///system", mock_conn))
        with pytest.raises(DefinitionError, match="already exists"):
            controller.define(descriptor)

    def test_lookup_failure_is_not_treated_as_absent(self, mock_conn, descriptor, libvirt_error):
        mock_conn.lookupByName.side_effect = libvirt_error("rpc failure", libvirt.VIR_ERR_RPC)
        controller = LifecycleController(Connection("qemu:///system", mock_conn))
        with pytest.raises(DefinitionError, match="lookup failed"):
            controller.define(descriptor)
        mock_conn.defineXML.assert_not_called()

    def test_none_domain(self, mock_conn, descriptor, libvirt_error):
        mock_conn.lookupByName.side_effect = libvirt_error("no domain", libvirt.VIR_ERR_NO_DOMAIN)
        mock_conn.defineXML.return_value = None
        controller = LifecycleController(Connection("qemu:///system", mock_conn))
        with pytest.raises(DefinitionError, match="returned no domain"):
            controller.define(descriptor)


class TestStart:
    def test_from_defined(self, controller, connection, descriptor):
        handle = controller.define(descriptor)
        controller.start(handle)
        assert _state(connection, handle) is DomainState.RUNNING

    @pytest.mark.parametrize("code", [VIR_DOMAIN_RUNNING, VIR_DOMAIN_PAUSED])
    def test_already_running(self, controller, daemon, code):
        daemon.add("vm", state=code)
        handle = controller.inspector.lookup("vm")
        with pytest.raises(LifecycleError) as exc:
            controller.start(handle)
        assert exc.value.reason is LifecycleFailure.ALREADY_RUNNING
        assert exc.value.transition == "start"
        assert daemon.domains["vm"].calls == []

    def test_invalid_state(self, controller, daemon):
        daemon.add("vm", state=VIR_DOMAIN_CRASHED)
        with pytest.raises(LifecycleError) as exc:
            controller.start(controller.inspector.lookup("vm"))
        assert exc.value.reason is LifecycleFailure.INVALID_STATE

    def test_daemon_rejected(self, mock_conn, libvirt_error):
        conn = Connection("qemu:///system", mock_conn)
        domain = MagicMock()
        domain.state.return_value = [VIR_DOMAIN_SHUTOFF, 0]
        domain.create.side_effect = libvirt_error("Cannot access storage file", libvirt.VIR_ERR_INTERNAL_ERROR)
        handle = conn.register("vm", domain)
        with pytest.raises(LifecycleError, match="Cannot access storage file") as exc:
            LifecycleController(conn).start(handle)
        assert exc.value.reason is LifecycleFailure.DAEMON_REJECTED


class TestStop:
    def test_requests_graceful_shutdown(self, controller, daemon):
        domain = daemon.add("vm", state=VIR_DOMAIN_RUNNING)
        controller.stop(controller.inspector.lookup("vm"))
        assert domain.calls == ["shutdown"]
        assert "destroy" not in domain.calls

    def test_not_running(self, controller, daemon):
        daemon.add("vm", state=VIR_DOMAIN_SHUTOFF)
        with pytest.raises(LifecycleError) as exc:
            controller.stop(controller.inspector.lookup("vm"))
        assert exc.value.reason is LifecycleFailure.INVALID_STATE


class TestDestroy:
    @pytest.mark.parametrize("code", [VIR_DOMAIN_RUNNING, VIR_DOMAIN_PAUSED, VIR_DOMAIN_SHUTDOWN])
    def test_forces_off(self, controller, connection, daemon, code):
        daemon.add("vm", state=code)
        handle = controller.inspector.lookup("vm")
        controller.destroy(handle)
        assert _state(connection, handle) is DomainState.SHUTOFF

    def test_already_off_is_surfaced(self, controller, daemon):
        daemon.add("vm", state=VIR_DOMAIN_SHUTOFF)
        with pytest.raises(LifecycleError) as exc:
            controller.destroy(controller.inspector.lookup("vm"))
        assert exc.value.reason is LifecycleFailure.DAEMON_REJECTED
        assert "not running" in str(exc.value)

    def test_ignore_inactive_policy(self, controller, daemon):
        domain = daemon.add("vm", state=VIR_DOMAIN_SHUTOFF)
        controller.destroy(controller.inspector.lookup("vm"), ignore_inactive=True)
        assert domain.calls == []


class TestUndefine:
    def test_destroy_then_undefine(self, controller, connection, daemon, descriptor):
        handle = controller.define(descriptor)
        controller.start(handle)
        controller.destroy(handle)
        controller.undefine(handle)

        assert daemon.domains["test-vm"].undefined
        with pytest.raises(NotFoundError):
            connection.resolve(handle)
        with pytest.raises(NotFoundError):
            controller.inspector.lookup("test-vm")

    def test_still_running_leaves_domain_defined(self, controller, daemon):
        domain = daemon.add("vm", state=VIR_DOMAIN_RUNNING)
        handle = controller.inspector.lookup("vm")
        with pytest.raises(LifecycleError) as exc:
            controller.undefine(handle)
        assert exc.value.reason is LifecycleFailure.STILL_RUNNING
        assert not domain.undefined
        assert "undefine" not in domain.calls

    def test_stale_handle(self, controller, daemon):
        daemon.add("vm")
        handle = controller.inspector.lookup("vm")
        daemon.domains["vm"].undefined = True  # removed by another client
        with pytest.raises(NotFoundError):
            controller.undefine(handle)

    def test_define_after_undefine(self, controller, descriptor):
        first = controller.define(descriptor)
        controller.undefine(first)
        second = controller.define(descriptor)
        assert second != first


class TestEnsureAbsent:
    def test_running_domain_removed(self, controller, daemon):
        domain = daemon.add("vm", state=VIR_DOMAIN_RUNNING)
        assert controller.ensure_absent("vm") is True
        assert domain.calls == ["destroy", "undefine"]

    def test_shutoff_domain_removed(self, controller, daemon):
        domain = daemon.add("vm", state=VIR_DOMAIN_SHUTOFF)
        assert controller.ensure_absent("vm") is True
        assert domain.calls == ["undefine"]

    def test_missing_domain(self, controller):
        assert controller.ensure_absent("ghost") is False


class TestStateQueryFailure:
    @pytest.mark.parametrize(
        "transition, invoke",
        [
            ("start", lambda controller, handle: controller.start(handle)),
            ("stop", lambda controller, handle: controller.stop(handle)),
            ("destroy", lambda controller, handle: controller.destroy(handle, ignore_inactive=True)),
            ("undefine", lambda controller, handle: controller.undefine(handle)),
        ],
    )
    def test_daemon_error_is_reported_against_transition(self, mock_conn, libvirt_error, transition, invoke):
        conn = Connection("qemu:///system", mock_conn)
        domain = MagicMock()
        domain.state.side_effect = libvirt_error("RPC failed", libvirt.VIR_ERR_RPC)
        handle = conn.register("vm", domain)

        with pytest.raises(LifecycleError, match="RPC failed") as exc:
            invoke(LifecycleController(conn), handle)

        assert exc.value.transition == transition
        assert exc.value.reason is LifecycleFailure.DAEMON_REJECTED
        domain.create.assert_not_called()
        domain.shutdown.assert_not_called()
        domain.destroy.assert_not_called()
        domain.undefine.assert_not_called()

    def test_released_connection_reports_not_found(self, controller, connection, daemon):
        daemon.add("vm", state=VIR_DOMAIN_RUNNING)
        handle = controller.inspector.lookup("vm")
        connection.release()

        with pytest.raises(NotFoundError):
            controller.stop(handle)

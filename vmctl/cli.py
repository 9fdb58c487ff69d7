"""CLI entry points for vmctl."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import List, Optional, Sequence

from vmctl.config import parse_env
from vmctl.connection import Connection, ConnectionManager, silence_libvirt_errors
from vmctl.descriptor import DomainDescriptorBuilder
from vmctl.emulator import EmulatorLocator
from vmctl.exceptions import HypervisorConnectionError, ManagerError
from vmctl.inspector import StateInspector
from vmctl.lifecycle import LifecycleController
from vmctl.models import ControllerConfig, DomainSummary, DomainType
from vmctl.utils import kvm_available, log


def show_config(cfg: ControllerConfig) -> None:
    """Print the resolved configuration."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if isinstance(value, (list, tuple)):
            print(f"  {field.name}:")
            for item in value:
                print(f"    - {item}")
        else:
            print(f"  {field.name}: {value}")


def print_domains(summaries: Sequence[DomainSummary]) -> None:
    print(f"Found {len(summaries)} domains:")
    if not summaries:
        return
    max_name = max(len(summary.name) for summary in summaries)
    for summary in summaries:
        print(f"  - {summary.name:<{max_name}}  (State: {summary.state}, Memory: {summary.memory_mib} MiB)")


def print_connection_hints() -> None:
    log("ERROR", "All connection attempts failed.")
    log("INFO", "Make sure libvirtd is running:")
    log("INFO", "  Linux: sudo systemctl start libvirtd")
    log("INFO", "  macOS: brew services start libvirt")


def define_domain(args: argparse.Namespace, cfg: ControllerConfig, connection: Connection) -> int:
    emulator = EmulatorLocator.from_config(cfg).find()
    builder = DomainDescriptorBuilder.from_config(cfg)
    if args.type is None:
        domain_type = DomainType.KVM if kvm_available() else DomainType.QEMU
    else:
        domain_type = DomainType.parse(args.type)
    descriptor = builder.build_for(args.name, domain_type, args.memory, args.vcpus, emulator)
    if not descriptor.disk_path.exists():
        log("WARN", f"Disk image {descriptor.disk_path} does not exist yet")
        log("WARN", f"  Create it with: qemu-img create -f qcow2 {descriptor.disk_path} 10G")
    controller = LifecycleController(connection)
    handle = controller.define(descriptor)
    if args.start:
        controller.start(handle)
    return 0


def run_command(args: argparse.Namespace, cfg: ControllerConfig, connection: Connection) -> int:
    inspector = StateInspector(connection)
    controller = LifecycleController(connection, inspector)

    if args.command == "list":
        print_domains(inspector.list())
        return 0
    if args.command == "define":
        return define_domain(args, cfg, connection)
    if args.command == "remove":
        controller.ensure_absent(args.name)
        return 0

    handle = inspector.lookup(args.name)
    if args.command == "state":
        print(f"VM '{handle.name}' state: {inspector.get_state(handle)}")
    elif args.command == "start":
        controller.start(handle)
    elif args.command == "stop":
        controller.stop(handle)
    elif args.command == "destroy":
        controller.destroy(handle, ignore_inactive=args.ignore_inactive)
    elif args.command == "undefine":
        controller.undefine(handle)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vmctl", description="libvirt domain lifecycle controller")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument(
        "--connect",
        action="append",
        metavar="URI",
        help="libvirt URI to try (repeatable; overrides the configured fallback order)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List all domains with state and memory")
    sub.add_parser("show-config", help="Show resolved configuration and exit")

    define = sub.add_parser("define", help="Define a new domain")
    define.add_argument("name")
    define.add_argument(
        "--type",
        choices=[member.tag for member in DomainType],
        default=None,
        help="Domain type (default: kvm when /dev/kvm is usable, else qemu)",
    )
    define.add_argument("--memory", type=int, default=1024, help="Memory in MiB (default: 1024)")
    define.add_argument("--vcpus", type=int, default=2, help="vCPU count (default: 2)")
    define.add_argument("--start", action="store_true", help="Start the domain after defining it")

    for name, help_text in (
        ("start", "Start a defined domain"),
        ("stop", "Request a graceful guest shutdown"),
        ("undefine", "Remove a shut-off domain's definition"),
        ("remove", "Destroy (if running) and undefine a domain"),
        ("state", "Show a domain's state"),
    ):
        sub.add_parser(name, help=help_text).add_argument("name")

    destroy = sub.add_parser("destroy", help="Force a domain off immediately")
    destroy.add_argument("name")
    destroy.add_argument(
        "--ignore-inactive",
        action="store_true",
        help="Succeed without action if the domain is already off",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = parse_env(args.config)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    if args.connect:
        cfg.endpoints = tuple(args.connect)

    if args.command == "show-config":
        show_config(cfg)
        return 0

    silence_libvirt_errors()
    try:
        connection = ConnectionManager.from_config(cfg).connect()
    except HypervisorConnectionError as exc:
        log("ERROR", str(exc))
        print_connection_hints()
        return 1

    try:
        with connection:
            return run_command(args, cfg, connection)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1

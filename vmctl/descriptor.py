"""Domain descriptor validation and libvirt XML rendering for vmctl."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union
from xml.etree.ElementTree import Element, SubElement, tostring

from vmctl.constants import (
    DEFAULT_ARCH,
    DEFAULT_NETWORK,
    DISK_FORMAT,
    SYSTEM_IMAGES_DIR,
    USER_IMAGES_SUBDIR,
)
from vmctl.exceptions import ValidationError
from vmctl.models import ControllerConfig, DomainDescriptor, DomainType

# Characters XML 1.0 cannot carry at all, escaped or not.
_XML_ILLEGAL_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def resolve_disk_path(
    home: Optional[str],
    name: str,
    system_dir: Path = SYSTEM_IMAGES_DIR,
    user_subdir: Path = USER_IMAGES_SUBDIR,
) -> Path:
    """Pick the qcow2 image location for ``name``.

    With a home directory the image lives in the per-user libvirt image
    directory; without one it falls back to the system-wide directory.
    """
    filename = f"{name}.{DISK_FORMAT}"
    if home:
        return Path(home) / user_subdir / filename
    return Path(system_dir) / filename


def _require_positive(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"must be an integer (got {value!r})")
    if value <= 0:
        raise ValidationError(field, f"must be > 0 (got {value})")
    return value


def _require_xml_text(field: str, value: str) -> None:
    if _XML_ILLEGAL_RE.search(value):
        raise ValidationError(field, "contains control characters")


def build_descriptor(
    name: str,
    domain_type: DomainType,
    memory_mib: int,
    vcpus: int,
    emulator_path: Union[str, Path],
    disk_path: Union[str, Path],
    arch: str = DEFAULT_ARCH,
    network: str = DEFAULT_NETWORK,
) -> DomainDescriptor:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name", "must be a non-empty string")
    if not isinstance(domain_type, DomainType):
        raise ValidationError("domain type", f"must be a DomainType (got {domain_type!r})")
    _require_positive("memory", memory_mib)
    _require_positive("vcpus", vcpus)
    if emulator_path is None or not str(emulator_path).strip() or str(emulator_path) == ".":
        raise ValidationError("emulator path", "must be non-empty")
    if disk_path is None or not str(disk_path).strip():
        raise ValidationError("disk path", "must be non-empty")
    for field, value in (("arch", arch), ("network", network)):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(field, "must be a non-empty string")
    for field, value in (
        ("name", name),
        ("emulator path", str(emulator_path)),
        ("disk path", str(disk_path)),
        ("arch", arch),
        ("network", network),
    ):
        _require_xml_text(field, value)
    return DomainDescriptor(
        name=name,
        domain_type=domain_type,
        memory_mib=memory_mib,
        vcpus=vcpus,
        emulator_path=Path(emulator_path),
        disk_path=Path(disk_path),
        arch=arch,
        network=network,
    )


def _element_to_str(root: Element) -> str:
    """Serialize an ElementTree element to a pretty-printed XML string without declaration."""
    from xml.dom.minidom import parseString

    raw = tostring(root, encoding="unicode")
    return parseString(raw).documentElement.toprettyxml(indent="  ").strip()


def render_domain_xml(descriptor: DomainDescriptor) -> str:
    """Render the libvirt domain document; ElementTree escapes every value."""
    domain = Element("domain", type=descriptor.domain_type.tag)

    SubElement(domain, "name").text = descriptor.name
    mem = SubElement(domain, "memory", unit="MiB")
    mem.text = str(descriptor.memory_mib)
    SubElement(domain, "vcpu").text = str(descriptor.vcpus)

    os_el = SubElement(domain, "os")
    os_type = SubElement(os_el, "type", arch=descriptor.arch)
    os_type.text = "hvm"
    SubElement(os_el, "boot", dev="hd")

    features = SubElement(domain, "features")
    SubElement(features, "acpi")
    SubElement(features, "apic")

    devices = SubElement(domain, "devices")
    SubElement(devices, "emulator").text = str(descriptor.emulator_path)

    disk = SubElement(devices, "disk", type="file", device="disk")
    SubElement(disk, "driver", name="qemu", type=DISK_FORMAT)
    SubElement(disk, "source", file=str(descriptor.disk_path))
    SubElement(disk, "target", dev="vda", bus="virtio")

    iface = SubElement(devices, "interface", type="network")
    SubElement(iface, "source", network=descriptor.network)
    SubElement(iface, "model", type="virtio")

    SubElement(devices, "console", type="pty")
    SubElement(devices, "graphics", type="vnc", port="-1", autoport="yes")

    return _element_to_str(domain)


class DomainDescriptorBuilder:
    def __init__(
        self,
        system_images_dir: Path = SYSTEM_IMAGES_DIR,
        user_images_subdir: Path = USER_IMAGES_SUBDIR,
        arch: str = DEFAULT_ARCH,
        network: str = DEFAULT_NETWORK,
    ) -> None:
        self.system_images_dir = Path(system_images_dir)
        self.user_images_subdir = Path(user_images_subdir)
        self.arch = arch
        self.network = network

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "DomainDescriptorBuilder":
        return cls(
            system_images_dir=config.system_images_dir,
            user_images_subdir=config.user_images_subdir,
            arch=config.arch,
            network=config.network,
        )

    def disk_path_for(self, name: str, home: Optional[str] = None) -> Path:
        return resolve_disk_path(home, name, self.system_images_dir, self.user_images_subdir)

    def build(
        self,
        name: str,
        domain_type: DomainType,
        memory_mib: int,
        vcpus: int,
        emulator_path: Union[str, Path],
        disk_path: Union[str, Path],
    ) -> DomainDescriptor:
        return build_descriptor(
            name,
            domain_type,
            memory_mib,
            vcpus,
            emulator_path,
            disk_path,
            arch=self.arch,
            network=self.network,
        )

    def build_for(
        self,
        name: str,
        domain_type: DomainType,
        memory_mib: int,
        vcpus: int,
        emulator_path: Union[str, Path],
    ) -> DomainDescriptor:
        """Build with the disk path derived from the current ``HOME``."""
        disk_path = self.disk_path_for(name, os.environ.get("HOME"))
        return self.build(name, domain_type, memory_mib, vcpus, emulator_path, disk_path)

    @staticmethod
    def serialize(descriptor: DomainDescriptor) -> str:
        return render_domain_xml(descriptor)

# This file is part of ds-identify. See LICENSE file for license information.

"""Immutable record of the host facts one ds-identify run looks at."""

import dataclasses
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, NamedTuple, Tuple

from dsidentify.config import ConfigView

UNAVAILABLE = "unavailable"


class SignalKind(Enum):
    FIRMWARE_VENDOR = "firmware-vendor"
    FIRMWARE_PRODUCT = "firmware-product"
    FIRMWARE_SERIAL = "firmware-serial"
    FIRMWARE_UUID = "firmware-uuid"
    FIRMWARE_ASSET_TAG = "firmware-asset-tag"
    FIRMWARE_BOARD = "firmware-board"
    KERNEL_PARAM = "kernel-param"
    FILESYSTEM_MARKER = "filesystem-marker"
    FILESYSTEM_LABEL = "filesystem-label"
    VIRT_TYPE = "virt-type"
    UNAME = "uname"
    PROCESS_ENV = "process-env"
    GUESTINFO = "guestinfo"

    def __str__(self) -> str:
        return self.value


class HostSignal(NamedTuple):
    kind: SignalKind
    value: str
    present: bool


class Marker:
    """Names of the well-known paths whose presence is collected."""

    SEED_NOCLOUD = "seed/nocloud"
    SEED_NOCLOUD_NET = "seed/nocloud-net"
    WRITABLE_SEED_NOCLOUD = "writable/seed/nocloud"
    WRITABLE_SEED_NOCLOUD_NET = "writable/seed/nocloud-net"
    SEED_AZURE = "seed/azure"
    SEED_OVF = "seed/ovf"
    SEED_CONFIG_DRIVE = "seed/config_drive"
    SEED_EC2 = "seed/ec2"
    SEED_ALIYUN = "seed/AliYun"
    SEED_OPENNEBULA = "seed/opennebula"
    BIGSTEP_URL = "bigstep-url"
    LXD_SOCKET = "lxd-socket"
    SMARTOS_SOCKET = "smartos-socket"
    SCALEWAY = "scaleway"
    VULTR = "vultr"
    FLOPPY = "floppy"
    VMWARE_TOOLS_PLUGIN = "vmware-tools-plugin"
    DISABLED = "cloud-init-disabled"


class VMwareFacts(NamedTuple):
    """What the VMware transports have to offer.

    env_* reflect VMX_GUESTINFO* environment variables, the guestinfo
    values are only queried on VMware virtualization.
    """

    env_guestinfo: bool = False
    env_metadata: bool = False
    env_userdata: bool = False
    env_vendordata: bool = False
    guestinfo_tool: str = ""
    guestinfo: Tuple[Tuple[str, str], ...] = ()

    def get_guestinfo(self, key: str) -> str:
        for name, value in self.guestinfo:
            if name == key:
                return value
        return ""


@dataclasses.dataclass(frozen=True)
class HostSnapshot:
    product_name: str = ""
    sys_vendor: str = ""
    product_serial: str = ""
    product_uuid: str = ""
    chassis_asset_tag: str = ""
    board_name: str = ""
    hypervisor_uuid: str = ""
    pid1_product_name: str = ""
    kernel_cmdline: str = ""
    virt: str = "none"
    uname_kernel_name: str = "Linux"
    uname_kernel_version: str = ""
    uname_machine: str = ""
    fs_labels: Tuple[str, ...] = ()
    fs_uuids: Tuple[str, ...] = ()
    # (device, label) for every iso9660 filesystem
    iso9660_devs: Tuple[Tuple[str, str], ...] = ()
    cdrom_ovf: Tuple[str, ...] = ()
    markers: FrozenSet[str] = frozenset()
    cloud_info: str = ""
    ibm_provisioning: bool = False
    vmware: VMwareFacts = VMwareFacts()
    config: ConfigView = ConfigView()

    def signals(self) -> Iterator[HostSignal]:
        firmware = (
            (SignalKind.FIRMWARE_VENDOR, self.sys_vendor),
            (SignalKind.FIRMWARE_PRODUCT, self.product_name),
            (SignalKind.FIRMWARE_SERIAL, self.product_serial),
            (SignalKind.FIRMWARE_UUID, self.product_uuid),
            (SignalKind.FIRMWARE_ASSET_TAG, self.chassis_asset_tag),
            (SignalKind.FIRMWARE_BOARD, self.board_name),
            (SignalKind.PROCESS_ENV, self.pid1_product_name),
            (SignalKind.VIRT_TYPE, self.virt),
        )
        for kind, value in firmware:
            yield HostSignal(kind, value, bool(value))
        yield HostSignal(
            SignalKind.UNAME,
            " ".join(
                (
                    self.uname_kernel_name,
                    self.uname_kernel_version,
                    self.uname_machine,
                )
            ),
            bool(self.uname_kernel_name),
        )
        for tok in self.kernel_cmdline.split():
            yield HostSignal(SignalKind.KERNEL_PARAM, tok, True)
        for label in self.fs_labels:
            yield HostSignal(SignalKind.FILESYSTEM_LABEL, label, True)
        for marker in sorted(self.markers):
            yield HostSignal(SignalKind.FILESYSTEM_MARKER, marker, True)
        for key, value in self.vmware.guestinfo:
            yield HostSignal(SignalKind.GUESTINFO, key, bool(value))

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["markers"] = sorted(self.markers)
        data["iso9660_devs"] = dict(self.iso9660_devs)
        data["vmware"] = self.vmware._asdict()
        data["vmware"]["guestinfo"] = dict(self.vmware.guestinfo)
        data["config"] = self.config.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostSnapshot":
        """Build a snapshot from a test-signals document.

        Keys absent from data keep their "not present" default.
        """
        kwargs = dict(data)
        for key in ("fs_labels", "fs_uuids", "cdrom_ovf"):
            if key in kwargs:
                kwargs[key] = tuple(kwargs[key])
        if "iso9660_devs" in kwargs:
            kwargs["iso9660_devs"] = tuple(kwargs["iso9660_devs"].items())
        if "markers" in kwargs:
            kwargs["markers"] = frozenset(kwargs["markers"])
        if "vmware" in kwargs:
            vmware = dict(kwargs["vmware"])
            vmware["guestinfo"] = tuple(vmware.get("guestinfo", {}).items())
            kwargs["vmware"] = VMwareFacts(**vmware)
        if "config" in kwargs:
            kwargs["config"] = ConfigView.from_dict(kwargs["config"])
        return cls(**kwargs)

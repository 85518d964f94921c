# This file is part of ds-identify. See LICENSE file for license information.

"""Reduce raw host evidence to the canonical tokens rules compare against.

Firmware strings are matched case-insensitively against shell-style
patterns after trimming whitespace, so rules never look at raw strings.
"""

import dataclasses
import logging
import re
from enum import Enum
from fnmatch import fnmatchcase
from typing import Dict, FrozenSet, NamedTuple, Tuple

from dsidentify import settings, util
from dsidentify.signals import HostSnapshot, Marker

LOG = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Values systemd-detect-virt (and the BSD mapping) report for containers.
CONTAINER_VIRT = frozenset(
    (
        "container-other",
        "docker",
        "lxc",
        "lxc-libvirt",
        "openvz",
        "podman",
        "proot",
        "rkt",
        "systemd-nspawn",
        "wsl",
    )
)

AZURE_CHASSIS = "7783-7084-3265-9085-8269-3286-77"
IBM_CONFIG_UUID = "9796-932E"
MAAS_IQN = "iqn.2004-05.com.ubuntu:maas"
SMARTOS_KERNEL_VERSION = "BrandZ virtual linux"

# Labels which mark a filesystem as the OVF transport, and labels that are
# known to belong to other datasources.
OVF_LABELS = frozenset(("ovf-transport", "ovfenv", "ovf env"))
NON_OVF_LABELS = ("config-2", "rd_rdfe_stable*", "cidata", "memdisk")


class VirtKind(Enum):
    NONE = "none"
    VM = "vm"
    CONTAINER = "container"

    def __str__(self) -> str:
        return self.value


class Signature(NamedTuple):
    token: str
    # every (field, pattern) pair has to match
    matches: Tuple[Tuple[str, str], ...]


FIRMWARE_SIGNATURES = (
    Signature("aliyun", (("product_name", "Alibaba Cloud ECS"),)),
    Signature("azure", (("chassis_asset_tag", AZURE_CHASSIS),)),
    Signature("cloudsigma", (("product_name", "CloudSigma"),)),
    Signature("cloudstack", (("product_name", "CloudStack*"),)),
    Signature("digitalocean", (("sys_vendor", "DigitalOcean"),)),
    Signature("vultr", (("sys_vendor", "Vultr"),)),
    Signature("gce", (("product_name", "Google Compute Engine"),)),
    Signature("gce", (("product_serial", "GoogleCloud*"),)),
    Signature("openstack", (("product_name", "OpenStack Nova"),)),
    Signature("openstack", (("product_name", "OpenStack Compute"),)),
    Signature("openstack", (("pid1_product_name", "OpenStack Nova"),)),
    Signature("openstack", (("pid1_product_name", "OpenStack Compute"),)),
    Signature("openstack", (("chassis_asset_tag", "OpenStack Nova"),)),
    Signature("openstack", (("chassis_asset_tag", "OpenStack Compute"),)),
    Signature("openstack", (("chassis_asset_tag", "OpenTelekomCloud"),)),
    Signature("openstack", (("chassis_asset_tag", "SAP CCloud VM"),)),
    Signature("openstack", (("chassis_asset_tag", "HUAWEICLOUD"),)),
    Signature("smartos", (("product_name", "SmartDC*"),)),
    Signature("scaleway", (("sys_vendor", "Scaleway"),)),
    Signature("hetzner", (("sys_vendor", "Hetzner"),)),
    Signature("oracle", (("chassis_asset_tag", "OracleCloud.com"),)),
    Signature("exoscale", (("product_name", "Exoscale*"),)),
    Signature("upcloud", (("sys_vendor", "UpCloud"),)),
    Signature("nwcs", (("sys_vendor", "NWCS"),)),
    Signature("akamai", (("sys_vendor", "Akamai"),)),
    Signature("akamai", (("sys_vendor", "Linode"),)),
    Signature("cloudcix", (("product_name", "CloudCIX"),)),
    Signature("lxd", (("board_name", "LXD"),)),
    # Ec2 compatible platforms
    Signature("brightbox", (("product_serial", "*.brightbox.com"),)),
    Signature("zstack", (("chassis_asset_tag", "*.zstack.io"),)),
    Signature("e24cloud", (("sys_vendor", "e24cloud"),)),
    Signature(
        "outscale",
        (("sys_vendor", "3DS Outscale"), ("product_name", "3DS Outscale VM")),
    ),
)

# Ec2 platforms in the order they are identified.
EC2_PLATFORMS = ("brightbox", "zstack", "e24cloud", "outscale")

ALTCLOUD_TYPES = ("rhev", "vsphere")

# 12345678-1234-5678-... with the first three groups byte swapped
SWAPPED_UUID_RE = re.compile(
    r"^(..)(..)(..)(..)-(..)(..)-(..)(..)(-.*)$", re.IGNORECASE
)


@dataclasses.dataclass(frozen=True)
class NormalizedHost:
    platforms: FrozenSet[str]
    ec2_platform: str
    virt: VirtKind
    hypervisor: str
    x86: bool
    labels: FrozenSet[str]
    uuids: FrozenSet[str]
    markers: FrozenSet[str]
    cmdline_words: FrozenSet[str]
    cmdline_params: Dict[str, str]
    nocloud_hint: bool
    maas_ephemeral: bool
    altcloud: str
    smartos_container: bool
    ibm_provisioning: bool
    ibm_cloud: bool
    ovf_cdrom: bool
    ovf_guestinfo: bool
    vmware_env_transport: bool
    vmware_guestinfo: bool
    vmware_customization: bool
    maas_config: bool
    nocloud_config: bool
    ec2_strict_id: str
    dslist: Tuple[str, ...]

    @property
    def in_container(self) -> bool:
        return self.virt is VirtKind.CONTAINER

    def has_label(self, *patterns: str) -> bool:
        return any(
            fnmatchcase(label, pattern.lower())
            for label in self.labels
            for pattern in patterns
        )


def clean(value: str) -> str:
    return (value or "").strip().lower()


def matches(value: str, pattern: str) -> bool:
    return fnmatchcase(clean(value), pattern.lower())


def virt_kind(virt: str) -> VirtKind:
    virt = clean(virt)
    if virt in ("", "none", settings.DS_NONE.lower(), "unavailable"):
        return VirtKind.NONE
    if virt in CONTAINER_VIRT:
        return VirtKind.CONTAINER
    return VirtKind.VM


def platform_tokens(snapshot: HostSnapshot) -> FrozenSet[str]:
    tokens = set()
    for sig in FIRMWARE_SIGNATURES:
        if all(
            matches(getattr(snapshot, field), pattern)
            for field, pattern in sig.matches
        ):
            tokens.add(sig.token)
    if is_aws(snapshot):
        tokens.add("aws")
    return frozenset(tokens)


def swap_uuid(uuid: str) -> str:
    """Return uuid with the first three groups in the other byte order."""
    match = SWAPPED_UUID_RE.match(uuid)
    if not match:
        return uuid
    g = match.groups()
    return "".join(
        (g[3], g[2], g[1], g[0], "-", g[5], g[4], "-", g[7], g[6], g[8])
    )


def is_aws(snapshot: HostSnapshot) -> bool:
    # http://docs.aws.amazon.com/AWSEC2/latest/UserGuide/identify_ec2_instances.html
    if clean(snapshot.hypervisor_uuid).startswith("ec2"):
        return True
    uuid = clean(snapshot.product_uuid)
    serial = clean(snapshot.product_serial)
    if uuid.startswith("ec2") and serial.startswith("ec2") and uuid == serial:
        return True
    return swap_uuid(uuid).startswith("ec2")


def ec2_platform(platforms: FrozenSet[str]) -> str:
    for name in EC2_PLATFORMS:
        if name in platforms:
            return name
    if "aws" in platforms:
        return "aws"
    return UNKNOWN


def altcloud_type(snapshot: HostSnapshot) -> str:
    ctype = snapshot.cloud_info or snapshot.product_name
    for name in ALTCLOUD_TYPES:
        if matches(ctype, name):
            return name
    return UNKNOWN


def parse_cmdline(cmdline: str) -> Tuple[FrozenSet[str], Dict[str, str]]:
    words = cmdline.split()
    params = {}
    for word in words:
        key, sep, value = word.partition("=")
        if sep:
            params[key] = value
    return frozenset(words), params


def ec2_strict_id(snapshot: HostSnapshot, params: Dict[str, str], default):
    """strict_id setting, first of kernel command line, config, default."""
    value = params.get("ci.datasource.ec2.strict_id")
    if value is None:
        cfg = snapshot.config.ds_config("Ec2").get("strict_id")
        if cfg is not None:
            value = str(cfg).lower() if isinstance(cfg, bool) else str(cfg)
    if value is None:
        value = default
    key = value.split(",", 1)[0]
    if key not in ("true", "false", "warn"):
        LOG.warning("unknown value '%s' for strict_id, using 'true'", key)
        key = "true"
    return key


def normalize(
    snapshot: HostSnapshot,
    ec2_strict_default: str = settings.DI_EC2_STRICT_ID_DEFAULT,
) -> NormalizedHost:
    platforms = platform_tokens(snapshot)
    virt = virt_kind(snapshot.virt)
    hypervisor = clean(snapshot.virt) if virt is not VirtKind.NONE else ""
    labels = frozenset(clean(label) for label in snapshot.fs_labels if label)
    uuids = frozenset(clean(uuid) for uuid in snapshot.fs_uuids if uuid)
    words, params = parse_cmdline(snapshot.kernel_cmdline)
    markers = snapshot.markers
    config = snapshot.config

    def has_label(*names):
        return bool(labels.intersection(names))

    nocloud_hint = any(
        w.lower().startswith("ds=nocloud")
        for w in list(words) + snapshot.product_serial.split()
    )
    maas_ephemeral = (
        "cloud-config-url" in params and MAAS_IQN in snapshot.kernel_cmdline
    )
    ibm_cloud = hypervisor == "xen" and (
        snapshot.ibm_provisioning
        or has_label("metadata")
        or (
            IBM_CONFIG_UUID.lower() in uuids
            and has_label("config-2")
        )
    )
    vmware = snapshot.vmware
    vmware_env = vmware.env_guestinfo and (
        vmware.env_metadata or vmware.env_userdata or vmware.env_vendordata
    )
    vmware_guestinfo = bool(vmware.guestinfo_tool) and any(
        vmware.get_guestinfo(key)
        for key in ("metadata", "userdata", "vendordata")
    )
    ovf_env = vmware.get_guestinfo("ovfEnv")
    ovf_guestinfo = hypervisor == "vmware" and ovf_env.lower().startswith(
        "<?xml"
    )
    vmware_customization = Marker.VMWARE_TOOLS_PLUGIN in markers and (
        util.is_false(config.disable_vmware_customization)
    )
    maas_cfg = config.ds_config("MAAS")
    nocloud_cfg = config.ds_config("NoCloud")
    return NormalizedHost(
        platforms=platforms,
        ec2_platform=ec2_platform(platforms),
        virt=virt,
        hypervisor=hypervisor,
        x86=util.is_x86(snapshot.uname_machine),
        labels=labels,
        uuids=uuids,
        markers=markers,
        cmdline_words=words,
        cmdline_params=params,
        nocloud_hint=nocloud_hint,
        maas_ephemeral=maas_ephemeral,
        altcloud=altcloud_type(snapshot),
        smartos_container=(
            snapshot.uname_kernel_version.strip() == SMARTOS_KERNEL_VERSION
            and Marker.SMARTOS_SOCKET in markers
        ),
        ibm_provisioning=snapshot.ibm_provisioning,
        ibm_cloud=ibm_cloud,
        ovf_cdrom=bool(snapshot.cdrom_ovf),
        ovf_guestinfo=ovf_guestinfo,
        vmware_env_transport=vmware_env,
        vmware_guestinfo=vmware_guestinfo,
        vmware_customization=vmware_customization,
        maas_config=bool(maas_cfg.get("metadata_url")),
        nocloud_config=bool(
            nocloud_cfg.get("user-data") and nocloud_cfg.get("meta-data")
        ),
        ec2_strict_id=ec2_strict_id(snapshot, params, ec2_strict_default),
        dslist=config.dslist,
    )

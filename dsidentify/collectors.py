# This file is part of ds-identify. See LICENSE file for license information.

"""Evidence collection.

Every reader here is best effort: anything that cannot be read is reported
as not present and never fails the run. All paths are taken relative to
the root being inspected so that a fake tree can stand in for a host.
"""

import logging
import os
import stat
from fnmatch import fnmatchcase
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple

from dsidentify import config, dmi, settings, subp, util
from dsidentify.normalize import (
    NON_OVF_LABELS,
    OVF_LABELS,
    VirtKind,
    virt_kind,
)
from dsidentify.signals import UNAVAILABLE, HostSnapshot, Marker, VMwareFacts

LOG = logging.getLogger(__name__)

OVF_SCHEMA = b"http://schemas.dmtf.org/ovf/environment/1"
# cdroms of 10MB and up are not OVF transports
OVF_CDROM_MAX_MB = 10

BSD_KERNELS = ("FreeBSD", "DragonFly", "OpenBSD", "NetBSD")

# kern.vm_guest values to the systemd-detect-virt names used elsewhere
BSD_VM_GUEST_MAP = {
    "bhyve": "bhyve",
    "generic": "vm-other",
    "hv": "microsoft",
    "kvm": "kvm",
    "none": "none",
    "parallels": "parallels",
    "vbox": "oracle",
    "vmware": "vmware",
    "xen": "xen",
}

DMI_FIELDS = {
    "product_name": "system-product-name",
    "sys_vendor": "system-manufacturer",
    "product_serial": "system-serial-number",
    "product_uuid": "system-uuid",
    "chassis_asset_tag": "chassis-asset-tag",
    "board_name": "baseboard-product-name",
}

VMWARE_PLUGIN_LIBDIRS = (
    "usr/lib",
    "usr/lib64",
    "usr/lib/x86_64-linux-gnu",
    "usr/lib/aarch64-linux-gnu",
    "usr/lib/i386-linux-gnu",
)
VMWARE_PLUGIN_TOOLDIRS = ("vmware-tools", "open-vm-tools")
VMWARE_PLUGIN = "plugins/vmsvc/libdeployPkgPlugin.so"
VMWARE_GUESTINFO_KEYS = ("metadata", "userdata", "vendordata", "ovfEnv")

IBM_PROVISIONING_CFG = "root/provisioningConfiguration.cfg"
IBM_INSTALL_LOG = "root/swinstall.log"


class SeedCheck(NamedTuple):
    path: str
    required: Tuple[str, ...] = ("meta-data",)


SEED_MARKERS = {
    Marker.SEED_NOCLOUD: SeedCheck(
        settings.SEED_DIR + "/nocloud", ("meta-data", "user-data")
    ),
    Marker.SEED_NOCLOUD_NET: SeedCheck(
        settings.SEED_DIR + "/nocloud-net", ("meta-data", "user-data")
    ),
    Marker.WRITABLE_SEED_NOCLOUD: SeedCheck(
        settings.WRITABLE_PREFIX + "/" + settings.SEED_DIR + "/nocloud",
        ("meta-data", "user-data"),
    ),
    Marker.WRITABLE_SEED_NOCLOUD_NET: SeedCheck(
        settings.WRITABLE_PREFIX + "/" + settings.SEED_DIR + "/nocloud-net",
        ("meta-data", "user-data"),
    ),
    Marker.SEED_AZURE: SeedCheck(
        settings.SEED_DIR + "/azure", ("ovf-env.xml",)
    ),
    Marker.SEED_OVF: SeedCheck(settings.SEED_DIR + "/ovf", ("ovf-env.xml",)),
    Marker.SEED_CONFIG_DRIVE: SeedCheck(
        settings.SEED_DIR + "/config_drive",
        ("openstack/latest/meta_data.json",),
    ),
    Marker.SEED_EC2: SeedCheck(
        settings.SEED_DIR + "/ec2", ("meta-data", "user-data")
    ),
    Marker.SEED_ALIYUN: SeedCheck(
        settings.SEED_DIR + "/AliYun", ("meta-data", "user-data")
    ),
    Marker.SEED_OPENNEBULA: SeedCheck(settings.SEED_DIR + "/opennebula"),
}

FILE_MARKERS = {
    Marker.BIGSTEP_URL: settings.VAR_LIB_CLOUD + "/data/seed/bigstep/url",
    Marker.SCALEWAY: "var/run/scaleway",
    Marker.VULTR: "etc/vultr",
    Marker.DISABLED: settings.DISABLED_MARKER,
}

EXISTS_MARKERS = {
    Marker.FLOPPY: "dev/floppy",
    Marker.SMARTOS_SOCKET: "native/.zonecontrol/metadata.sock",
}


class FsInfo(NamedTuple):
    labels: Tuple[str, ...] = ()
    uuids: Tuple[str, ...] = ()
    iso9660_devs: Tuple[Tuple[str, str], ...] = ()


def is_socket_file(path: str) -> bool:
    try:
        return stat.S_ISSOCK(os.stat(path).st_mode)
    except OSError:
        return False


def check_seed_dir(root: str, seed: SeedCheck) -> bool:
    seed_dir = util.target_path(root, seed.path)
    if not os.path.isdir(seed_dir):
        return False
    return all(os.path.isfile(os.path.join(seed_dir, f)) for f in seed.required)


def vmware_plugin_paths(root: str) -> List[str]:
    return [
        util.target_path(root, "/".join((libdir, tooldir, VMWARE_PLUGIN)))
        for libdir in VMWARE_PLUGIN_LIBDIRS
        for tooldir in VMWARE_PLUGIN_TOOLDIRS
    ]


def collect_markers(root: str) -> frozenset:
    found = set()
    for name, seed in SEED_MARKERS.items():
        if check_seed_dir(root, seed):
            found.add(name)
    for name, path in FILE_MARKERS.items():
        if os.path.isfile(util.target_path(root, path)):
            found.add(name)
    for name, path in EXISTS_MARKERS.items():
        if os.path.exists(util.target_path(root, path)):
            found.add(name)
    if is_socket_file(util.target_path(root, "dev/lxd/sock")):
        found.add(Marker.LXD_SOCKET)
    if any(os.path.isfile(p) for p in vmware_plugin_paths(root)):
        found.add(Marker.VMWARE_TOOLS_PLUGIN)
    LOG.debug("Found markers: %s", sorted(found))
    return frozenset(found)


def read_uname() -> Tuple[str, str, str]:
    """Return kernel name, kernel version and machine."""
    uname = os.uname()
    return uname.sysname, uname.version, uname.machine


def detect_virt(kernel_name: str) -> str:
    """Ask the platform tooling what virtualization is in use."""
    if subp.which("systemd-detect-virt"):
        try:
            out = subp.subp(["systemd-detect-virt"], rcs=[0, 1]).stdout
        except subp.ProcessExecutionError as e:
            LOG.warning("systemd-detect-virt failed: %s", e)
            return UNAVAILABLE
        return out.strip() or "none"
    if kernel_name in BSD_KERNELS:
        try:
            out = subp.subp(["sysctl", "-qn", "kern.vm_guest"]).stdout
        except subp.ProcessExecutionError as e:
            LOG.warning("Failed reading kern.vm_guest: %s", e)
            return UNAVAILABLE
        guest = out.strip()
        return BSD_VM_GUEST_MAP.get(guest, guest or "none")
    return UNAVAILABLE


def read_virt(env: Mapping[str, str], kernel_name: str) -> str:
    # systemd's generator passes SYSTEMD_VIRTUALIZATION=vm:kvm
    virt = env.get("SYSTEMD_VIRTUALIZATION")
    if virt:
        return virt.partition(":")[2] or virt
    return detect_virt(kernel_name)


def _read_proc_file(fname: str) -> str:
    """Content of a proc file, or "" when it cannot be read or decoded."""
    try:
        return util.load_text_file(fname, quiet=True)
    except (IOError, OSError, ValueError) as e:
        LOG.warning("Unable to read %s: %s", fname, e)
        return ""


def read_kernel_cmdline(
    env: Mapping[str, str], root: str, in_container: bool
) -> str:
    if "KERNEL_CMDLINE" in env:
        return env["KERNEL_CMDLINE"]
    if in_container:
        # the kernel command line of a container is the host's.
        fname = util.target_path(root, settings.PROC_1_CMDLINE)
        return _read_proc_file(fname).replace("\x00", " ")
    fname = util.target_path(root, settings.PROC_CMDLINE)
    return _read_proc_file(fname).strip()


def read_pid1_product_name(root: str) -> str:
    fname = util.target_path(root, settings.PROC_1_ENVIRON)
    contents = _read_proc_file(fname)
    return util.parse_proc_env(contents).get("product_name", "")


def read_hypervisor_uuid(root: str) -> str:
    return (
        util.read_first_line(
            util.target_path(root, settings.SYS_HYPERVISOR_UUID)
        )
        or ""
    )


def read_dmi(root: str, kernel_name: str) -> Dict[str, str]:
    values = {}
    for field, key in DMI_FIELDS.items():
        value = dmi.read_dmi_data(key, root=root, kernel_name=kernel_name)
        values[field] = value or ""
    return values


def blkid_export() -> Optional[str]:
    try:
        return subp.subp(["blkid", "-c", "/dev/null", "-o", "export"]).stdout
    except subp.ProcessExecutionError as e:
        # blkid exits 2 when it finds nothing to report
        if e.exit_code != 2:
            LOG.warning("Failed to run blkid: %s", e)
        return None


def geom_label_status() -> Optional[str]:
    try:
        return subp.subp(["geom", "label", "status", "-s"]).stdout
    except subp.ProcessExecutionError as e:
        LOG.warning("Failed to run geom: %s", e)
        return None


def parse_blkid_export(out: str) -> FsInfo:
    labels: List[str] = []
    uuids: List[str] = []
    isodevs: List[Tuple[str, str]] = []
    dev = ftype = label = ""

    def finish():
        if dev and ftype == "iso9660":
            isodevs.append((dev, label))

    for line in out.splitlines():
        key, _, value = line.strip().partition("=")
        if key == "DEVNAME":
            finish()
            dev, ftype, label = value, "", ""
        elif key in ("LABEL", "LABEL_FATBOOT"):
            label = value
            labels.append(value)
        elif key == "TYPE":
            ftype = value
        elif key == "UUID":
            uuids.append(value)
    finish()
    return FsInfo(tuple(labels), tuple(uuids), tuple(isodevs))


def parse_geom_label_status(out: str) -> FsInfo:
    """Parse `geom label status -s` output.

    Lines look like 'iso9660/cidata  N/A  vtbd2'.
    """
    labels: List[str] = []
    isodevs: List[Tuple[str, str]] = []
    for line in out.splitlines():
        toks = line.split()
        if len(toks) < 3:
            continue
        ftype, _, label = toks[0].partition("/")
        dev = "/dev/" + toks[-1]
        labels.append(label)
        if ftype == "iso9660":
            isodevs.append((dev, label))
    return FsInfo(tuple(labels), (), tuple(isodevs))


def read_fs_info(kernel_name: str, in_container: bool) -> FsInfo:
    if in_container:
        LOG.debug("Not reading filesystem info inside a container")
        return FsInfo()
    if kernel_name in ("FreeBSD", "DragonFly"):
        out = geom_label_status()
        return parse_geom_label_status(out) if out else FsInfo()
    out = blkid_export()
    return parse_blkid_export(out) if out else FsInfo()


def _is_cdrom_dev(dev: str) -> bool:
    name = dev[len("/dev/") :] if dev.startswith("/dev/") else ""
    return len(name) == 3 and (
        (name[:2] == "sr" and name[2].isdigit())
        or (name[:2] == "hd" and "a" <= name[2] <= "z")
    )


def is_cdrom_ovf(root: str, dev: str, label: str) -> bool:
    if not _is_cdrom_dev(dev):
        LOG.debug("skipping iso dev %s", dev)
        return False
    if label.lower() in OVF_LABELS:
        return True
    if any(fnmatchcase(label.lower(), pat) for pat in NON_OVF_LABELS):
        return False
    sfile = util.target_path(
        root, "%s/%s/size" % (settings.SYS_CLASS_BLOCK, os.path.basename(dev))
    )
    if not os.path.isfile(sfile):
        return False
    try:
        size = int(util.load_text_file(sfile).strip())
    except (IOError, OSError, ValueError) as e:
        LOG.warning("failed reading size from %s: %s", sfile, e)
        return False
    # size is in 512 byte units
    if size // 2048 >= OVF_CDROM_MAX_MB:
        LOG.debug("%s: size %sMB is too large for OVF", dev, size // 2048)
        return False
    try:
        content = util.load_binary_file(util.target_path(root, dev))
    except (IOError, OSError) as e:
        LOG.warning("failed reading %s: %s", dev, e)
        return False
    return OVF_SCHEMA in content.lower()


def find_ovf_cdroms(root: str, iso9660_devs) -> Tuple[str, ...]:
    return tuple(
        dev for dev, label in iso9660_devs if is_cdrom_ovf(root, dev, label)
    )


def vmware_guestinfo_tool() -> Optional[str]:
    """Path of vmware-rpctool, or vmtoolsd when that is all there is."""
    return subp.which("vmware-rpctool") or subp.which("vmtoolsd")


def vmware_guestinfo_get(tool: str, key: str) -> str:
    query = "info-get guestinfo.%s" % key
    if os.path.basename(tool) == "vmtoolsd":
        cmd = [tool, "--cmd", query]
    else:
        cmd = [tool, query]
    try:
        return subp.subp(cmd).stdout.strip()
    except subp.ProcessExecutionError as e:
        LOG.debug("No value for guestinfo.%s: %s", key, e)
        return ""


def read_vmware(env: Mapping[str, str], virt: str) -> VMwareFacts:
    guestinfo = ()
    tool = ""
    if virt == "vmware":
        tool = vmware_guestinfo_tool() or ""
        if tool:
            guestinfo = tuple(
                (key, vmware_guestinfo_get(tool, key))
                for key in VMWARE_GUESTINFO_KEYS
            )
    return VMwareFacts(
        env_guestinfo=bool(env.get("VMX_GUESTINFO")),
        env_metadata=bool(env.get("VMX_GUESTINFO_METADATA")),
        env_userdata=bool(env.get("VMX_GUESTINFO_USERDATA")),
        env_vendordata=bool(env.get("VMX_GUESTINFO_VENDORDATA")),
        guestinfo_tool=tool,
        guestinfo=guestinfo,
    )


def is_ibm_provisioning(root: str) -> bool:
    """IBM Cloud template provisioning is in progress on this boot.

    The provisioning config is present and either no install log exists or
    the log was written after this boot started.
    """
    prov_cfg = util.target_path(root, IBM_PROVISIONING_CFG)
    inst_log = util.target_path(root, IBM_INSTALL_LOG)
    boot_ref = util.target_path(root, settings.PROC_1_ENVIRON)
    if not os.path.exists(prov_cfg):
        return False
    if not os.path.exists(inst_log):
        LOG.debug("%s exists without %s", prov_cfg, inst_log)
        return True
    try:
        newer = os.stat(inst_log).st_mtime > os.stat(boot_ref).st_mtime
    except OSError as e:
        LOG.warning("Unable to compare %s to %s: %s", inst_log, boot_ref, e)
        return False
    if newer:
        LOG.debug("%s is from current boot", inst_log)
    else:
        LOG.debug("%s is from previous boot", inst_log)
    return newer


def read_cloud_info(root: str) -> str:
    fname = util.target_path(root, "etc/sysconfig/cloud-info")
    if not os.path.isfile(fname):
        return ""
    return util.read_first_line(fname) or ""


def collect(
    root: str = settings.DEFAULT_ROOT, env: Optional[Mapping[str, str]] = None
) -> HostSnapshot:
    """Read every piece of host evidence once."""
    if env is None:
        env = os.environ
    kernel_name, kernel_version, machine = read_uname()
    virt = read_virt(env, kernel_name)
    in_container = virt_kind(virt) is VirtKind.CONTAINER
    if in_container:
        LOG.debug("Not reading DMI data inside container %s", virt)
        dmi_values: Dict[str, str] = {}
    else:
        dmi_values = read_dmi(root, kernel_name)
    fs_info = read_fs_info(kernel_name, in_container)
    return HostSnapshot(
        hypervisor_uuid=read_hypervisor_uuid(root),
        pid1_product_name=read_pid1_product_name(root),
        kernel_cmdline=read_kernel_cmdline(env, root, in_container),
        virt=virt,
        uname_kernel_name=kernel_name,
        uname_kernel_version=kernel_version,
        uname_machine=machine,
        fs_labels=fs_info.labels,
        fs_uuids=fs_info.uuids,
        iso9660_devs=fs_info.iso9660_devs,
        cdrom_ovf=find_ovf_cdroms(root, fs_info.iso9660_devs),
        markers=collect_markers(root),
        cloud_info=read_cloud_info(root),
        ibm_provisioning=is_ibm_provisioning(root),
        vmware=read_vmware(env, virt),
        config=config.read_config(root),
        **dmi_values,
    )

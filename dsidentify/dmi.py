# This file is part of ds-identify. See LICENSE file for license information.
import logging
import os
from collections import namedtuple
from typing import Optional

from dsidentify import settings, subp, util

LOG = logging.getLogger(__name__)

KernelNames = namedtuple("KernelNames", ["linux", "freebsd", "openbsd"])
KernelNames.__new__.__defaults__ = (None, None, None)

# FreeBSD's kenv(1) and Linux /sys/class/dmi/id/* both use different names from
# dmidecode. The values are the same, and ultimately what we're interested in.
# Likewise, OpenBSD has the most commonly used things we need in sysctl(8)'s
# hw hierarchy.
# This is our canonical translation table, limited to the fields that
# datasource identification looks at.
DMIDECODE_TO_KERNEL = {
    "baseboard-product-name": KernelNames(
        "board_name", "smbios.planar.product", None
    ),
    "chassis-asset-tag": KernelNames(
        "chassis_asset_tag", "smbios.chassis.tag", None
    ),
    "system-manufacturer": KernelNames(
        "sys_vendor", "smbios.system.maker", "hw.vendor"
    ),
    "system-product-name": KernelNames(
        "product_name", "smbios.system.product", "hw.product"
    ),
    "system-serial-number": KernelNames(
        "product_serial", "smbios.system.serial", "hw.serialno"
    ),
    "system-uuid": KernelNames(
        "product_uuid", "smbios.system.uuid", "hw.uuid"
    ),
}


def _read_dmi_syspath(key: str, root: str) -> Optional[str]:
    """
    Reads dmi data from <root>/sys/class/dmi/id
    """
    kmap = DMIDECODE_TO_KERNEL.get(key)
    if kmap is None or kmap.linux is None:
        return None
    dmi_key_path = util.target_path(
        root, "{0}/{1}".format(settings.SYS_CLASS_DMI_ID, kmap.linux)
    )
    LOG.debug("querying dmi data %s", dmi_key_path)
    if not os.path.exists(dmi_key_path):
        LOG.debug("did not find %s", dmi_key_path)
        return None

    try:
        with open(dmi_key_path, "rb") as fp:
            key_data = fp.read()
    except PermissionError:
        LOG.debug("Could not read %s", dmi_key_path)
        return None

    # uninitialized dmi values show as all \xff and /sys appends a '\n'.
    # in that event, return empty string.
    if key_data == b"\xff" * (len(key_data) - 1) + b"\n":
        key_data = b""

    try:
        return key_data.decode("utf8").strip()
    except UnicodeDecodeError as e:
        LOG.warning(
            "utf-8 decode of content (%s) in %s failed: %s",
            dmi_key_path,
            key_data,
            e,
        )

    return None


def _read_kenv(key: str) -> Optional[str]:
    """
    Reads dmi data from FreeBSD's kenv(1)
    """
    kmap = DMIDECODE_TO_KERNEL.get(key)
    if kmap is None or kmap.freebsd is None:
        return None

    LOG.debug("querying dmi data %s", kmap.freebsd)

    try:
        cmd = ["kenv", "-q", kmap.freebsd]
        result = subp.subp(cmd).stdout.strip()
        LOG.debug("kenv returned '%s' for '%s'", result, kmap.freebsd)
        return result
    except subp.ProcessExecutionError as e:
        LOG.debug("failed kenv cmd: %s\n%s", cmd, e)

    return None


def _read_sysctl(key: str) -> Optional[str]:
    """
    Reads dmi data from OpenBSD's sysctl(8)
    """
    kmap = DMIDECODE_TO_KERNEL.get(key)
    if kmap is None or kmap.openbsd is None:
        return None

    LOG.debug("querying dmi data %s", kmap.openbsd)

    try:
        cmd = ["sysctl", "-qn", kmap.openbsd]
        result = subp.subp(cmd).stdout.strip()
        LOG.debug("sysctl returned '%s' for '%s'", result, kmap.openbsd)
        return result
    except subp.ProcessExecutionError as e:
        LOG.debug("failed sysctl cmd: %s\n%s", cmd, e)

    return None


def _read_dmidecode(key: str) -> Optional[str]:
    """
    Calls out to dmidecode to get the data out. This is mostly for supporting
    OS's without /sys/class/dmi/id support.
    """
    dmidecode_path = subp.which("dmidecode")
    if not dmidecode_path:
        LOG.debug("dmidecode is not available to read %s", key)
        return None
    try:
        cmd = [dmidecode_path, "--quiet", "--string", key]
        result = subp.subp(cmd).stdout.strip()
        LOG.debug("dmidecode returned '%s' for '%s'", result, key)
        if result.replace(".", "") == "":
            return ""
        return result
    except subp.ProcessExecutionError as e:
        LOG.debug("failed dmidecode cmd: %s\n%s", cmd, e)
        return None


def read_dmi_data(
    key: str, root: str = settings.DEFAULT_ROOT, kernel_name: str = "Linux"
) -> Optional[str]:
    """
    Wrapper for reading DMI data.

    Callers are expected not to ask from inside a container, DMI data
    there describes the host rather than the container.

    This will do the following (returning the first that produces a
    result):
        1) On FreeBSD and DragonFly use kenv(1), on OpenBSD sysctl(8).
        2) When <root>/sys/class/dmi/id exists, translate `key` from
           dmidecode naming to sysfs naming and read it from there.
        3) Fall-back to passing `key` to `dmidecode --string`.

    If all of the above fail to find a value, None will be returned.
    """
    if kernel_name in ("FreeBSD", "DragonFly"):
        return _read_kenv(key)

    if kernel_name == "OpenBSD":
        return _read_sysctl(key)

    if os.path.isdir(util.target_path(root, settings.SYS_CLASS_DMI_ID)):
        return _read_dmi_syspath(key, root)

    return _read_dmidecode(key)

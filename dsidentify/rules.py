# This file is part of ds-identify. See LICENSE file for license information.

"""Per-datasource identification rules.

Each rule is a pure function of a NormalizedHost returning FOUND, MAYBE
or NOT_FOUND. Rules are registered with the `rule` decorator under the
datasource name used in `datasource_list`.
"""

import logging
from typing import Callable, Dict, List, Sequence

from dsidentify import settings
from dsidentify.decision import DatasourceCandidate, Status
from dsidentify.normalize import UNKNOWN, NormalizedHost, VirtKind
from dsidentify.policy import MAYBE_ALL, Policy
from dsidentify.signals import Marker

LOG = logging.getLogger(__name__)

Rule = Callable[[NormalizedHost], Status]

RULES: Dict[str, Rule] = {}

FOUND = Status.FOUND
MAYBE = Status.MAYBE
NOT_FOUND = Status.NOT_FOUND


def rule(name: str):
    def decorator(func: Rule) -> Rule:
        RULES[name] = func
        return func

    return decorator


def _found_if(condition) -> Status:
    return FOUND if condition else NOT_FOUND


def _token_rule(name: str, token: str) -> None:
    """Register a rule that is satisfied by a firmware token alone."""

    def check(host: NormalizedHost) -> Status:
        return _found_if(token in host.platforms)

    check.__name__ = "check_%s" % name.lower()
    rule(name)(check)


def is_config_drive(host: NormalizedHost) -> bool:
    if Marker.SEED_CONFIG_DRIVE in host.markers:
        return True
    # IBM Cloud provides a config-2 filesystem that is not OpenStack's.
    if "IBMCloud" in host.dslist and host.ibm_cloud:
        LOG.debug("config-2 filesystem belongs to IBMCloud")
        return False
    return host.has_label("config-2")


@rule("MAAS")
def check_maas(host: NormalizedHost) -> Status:
    if host.in_container:
        return NOT_FOUND
    return _found_if(host.maas_ephemeral or host.maas_config)


@rule("ConfigDrive")
def check_config_drive(host: NormalizedHost) -> Status:
    return _found_if(is_config_drive(host))


@rule("NoCloud")
def check_nocloud(host: NormalizedHost) -> Status:
    if host.nocloud_hint:
        return FOUND
    seeds = (
        Marker.SEED_NOCLOUD,
        Marker.SEED_NOCLOUD_NET,
        Marker.WRITABLE_SEED_NOCLOUD,
        Marker.WRITABLE_SEED_NOCLOUD_NET,
    )
    if host.markers.intersection(seeds):
        return FOUND
    return _found_if(host.has_label("cidata") or host.nocloud_config)


@rule("AltCloud")
def check_altcloud(host: NormalizedHost) -> Status:
    if host.altcloud == "rhev" and Marker.FLOPPY in host.markers:
        return MAYBE
    if host.altcloud == "vsphere" and host.has_label("cdrom"):
        return MAYBE
    return NOT_FOUND


@rule("Azure")
def check_azure(host: NormalizedHost) -> Status:
    if "azure" in host.platforms or Marker.SEED_AZURE in host.markers:
        return FOUND
    if host.hypervisor != "microsoft":
        return NOT_FOUND
    return _found_if(host.has_label("rd_rdfe_*"))


@rule("Bigstep")
def check_bigstep(host: NormalizedHost) -> Status:
    return _found_if(Marker.BIGSTEP_URL in host.markers)


@rule("CloudStack")
def check_cloudstack(host: NormalizedHost) -> Status:
    if host.in_container:
        return NOT_FOUND
    return _found_if("cloudstack" in host.platforms)


@rule("Vultr")
def check_vultr(host: NormalizedHost) -> Status:
    return _found_if(
        "vultr" in host.platforms
        or "vultr" in host.cmdline_words
        or Marker.VULTR in host.markers
    )


@rule("AliYun")
def check_aliyun(host: NormalizedHost) -> Status:
    return _found_if(
        Marker.SEED_ALIYUN in host.markers or "aliyun" in host.platforms
    )


@rule("Ec2")
def check_ec2(host: NormalizedHost) -> Status:
    if Marker.SEED_EC2 in host.markers:
        return FOUND
    if host.in_container:
        return NOT_FOUND
    if host.ec2_platform != UNKNOWN:
        LOG.debug("Ec2 platform identified as %s", host.ec2_platform)
        return FOUND
    if host.ec2_strict_id == "true":
        return NOT_FOUND
    if host.ec2_strict_id == "warn":
        LOG.warning("Ec2 platform was not identified, strict_id=warn")
    return MAYBE


@rule("OpenNebula")
def check_opennebula(host: NormalizedHost) -> Status:
    if Marker.SEED_OPENNEBULA in host.markers:
        return FOUND
    return _found_if(host.has_label("context", "cdrom"))


@rule("OpenStack")
def check_openstack(host: NormalizedHost) -> Status:
    if is_config_drive(host):
        # ConfigDrive will handle it.
        return NOT_FOUND
    if "openstack" in host.platforms:
        return FOUND
    # OpenStack guests on other arches are not reliably identified.
    if not host.x86:
        return MAYBE
    return NOT_FOUND


@rule("OVF")
def check_ovf(host: NormalizedHost) -> Status:
    if Marker.SEED_OVF in host.markers:
        return FOUND
    if host.virt is VirtKind.NONE:
        LOG.debug("OVF is not searched on bare metal")
        return NOT_FOUND
    # Azure provides an ovf-env.xml but it is not an OVF datasource.
    if "azure" in host.platforms:
        return NOT_FOUND
    return _found_if(host.ovf_guestinfo or host.ovf_cdrom)


@rule("SmartOS")
def check_smartos(host: NormalizedHost) -> Status:
    return _found_if("smartos" in host.platforms or host.smartos_container)


@rule("Scaleway")
def check_scaleway(host: NormalizedHost) -> Status:
    return _found_if(
        "scaleway" in host.platforms
        or "scaleway" in host.cmdline_words
        or Marker.SCALEWAY in host.markers
    )


@rule("IBMCloud")
def check_ibmcloud(host: NormalizedHost) -> Status:
    if host.ibm_provisioning:
        LOG.debug("IBMCloud provisioning in progress")
        return NOT_FOUND
    return _found_if(host.ibm_cloud)


@rule("RbxCloud")
def check_rbxcloud(host: NormalizedHost) -> Status:
    return _found_if(host.has_label("cloudmd"))


@rule("VMware")
def check_vmware(host: NormalizedHost) -> Status:
    if host.vmware_env_transport:
        return FOUND
    if host.hypervisor != "vmware":
        return NOT_FOUND
    return _found_if(host.vmware_guestinfo or host.vmware_customization)


@rule("LXD")
def check_lxd(host: NormalizedHost) -> Status:
    if Marker.LXD_SOCKET in host.markers:
        return FOUND
    return _found_if(
        host.hypervisor in ("kvm", "qemu") and "lxd" in host.platforms
    )


for _name, _token in (
    ("CloudSigma", "cloudsigma"),
    ("DigitalOcean", "digitalocean"),
    ("GCE", "gce"),
    ("Hetzner", "hetzner"),
    ("Oracle", "oracle"),
    ("Exoscale", "exoscale"),
    ("UpCloud", "upcloud"),
    ("NWCS", "nwcs"),
    ("Akamai", "akamai"),
    ("CloudCIX", "cloudcix"),
):
    _token_rule(_name, _token)


def check(name: str, host: NormalizedHost) -> Status:
    """Run the rule for name. Failures count as NOT_FOUND."""
    func = RULES.get(name)
    if func is None:
        if name == settings.DS_NONE:
            LOG.debug("Skipping %s, it is always the fallback", name)
        else:
            LOG.warning("No check for datasource '%s'", name)
        return NOT_FOUND
    try:
        status = func(host)
    except Exception as e:
        LOG.warning("check for '%s' failed: %s", name, e)
        LOG.debug("check for '%s' failed", name, exc_info=True)
        return NOT_FOUND
    LOG.debug("check for '%s' returned %s", name, status)
    return status


def evaluate(
    host: NormalizedHost, dslist: Sequence[str]
) -> List[DatasourceCandidate]:
    """Evaluate each distinct datasource in dslist, in order."""
    seen = set()
    results = []
    for name in dslist:
        if name in seen:
            continue
        seen.add(name)
        results.append(DatasourceCandidate(name, check(name, host)))
    return results


def apply_maybe_policy(
    candidates: Sequence[DatasourceCandidate], policy: Policy
) -> List[DatasourceCandidate]:
    """Exclude MAYBE results when something was FOUND or maybe=none."""
    found = any(c.status is FOUND for c in candidates)
    keep_maybe = not found and policy.on_maybe == MAYBE_ALL
    results = []
    for cand in candidates:
        if cand.status is MAYBE and not keep_maybe:
            cand = cand._replace(status=Status.EXCLUDED)
        results.append(cand)
    return results

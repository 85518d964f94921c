# This file is part of ds-identify. See LICENSE file for license information.

# Exit codes
RC_FOUND = 0
RC_NOT_FOUND = 1
RC_FATAL = 3

# The catch-all datasource the provisioning agent falls back to.
DS_NONE = "None"

# Policies used when none is given on the command line or in ds-identify.cfg.
# Platforms with DMI data get a stricter notfound behaviour.
DI_DEFAULT_POLICY = "search,found=all,maybe=all,notfound=disabled"
DI_DEFAULT_POLICY_NO_DMI = "search,found=all,maybe=all,notfound=enabled"
DI_EC2_STRICT_ID_DEFAULT = "true"

# Order in which datasources are searched when cloud.cfg does not say.
DI_DSLIST_DEFAULT = [
    "MAAS",
    "ConfigDrive",
    "NoCloud",
    "AltCloud",
    "Azure",
    "Bigstep",
    "CloudSigma",
    "CloudStack",
    "DigitalOcean",
    "Vultr",
    "AliYun",
    "Ec2",
    "GCE",
    "OpenNebula",
    "OpenStack",
    "OVF",
    "SmartOS",
    "Scaleway",
    "Hetzner",
    "IBMCloud",
    "Oracle",
    "Exoscale",
    "RbxCloud",
    "UpCloud",
    "VMware",
    "LXD",
    "NWCS",
    "Akamai",
    "CloudCIX",
]

# Paths, relative to the root being inspected.
CLOUD_CONFIG = "etc/cloud/cloud.cfg"
CLOUD_CONFIG_D = "etc/cloud/cloud.cfg.d"
DSID_CONFIG = "etc/cloud/ds-identify.cfg"
DISABLED_MARKER = "etc/cloud/cloud-init.disabled"
VAR_LIB_CLOUD = "var/lib/cloud"
SEED_DIR = VAR_LIB_CLOUD + "/seed"
WRITABLE_PREFIX = "writable/system-data"
SYS_CLASS_DMI_ID = "sys/class/dmi/id"
SYS_CLASS_BLOCK = "sys/class/block"
SYS_HYPERVISOR_UUID = "sys/hypervisor/uuid"
PROC_CMDLINE = "proc/cmdline"
PROC_1_CMDLINE = "proc/1/cmdline"
PROC_1_ENVIRON = "proc/1/environ"

# cloud-init's run directory; BSDs have no /run.
RUN_DIR = "run/cloud-init"
RUN_DIR_BSD = "var/run/cloud-init"
RUN_CFG_NAME = "cloud.cfg"
RESULT_NAME = ".ds-identify.result"
LOG_NAME = "ds-identify.log"

DEFAULT_ROOT = "/"

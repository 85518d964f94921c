# This file is part of ds-identify. See LICENSE file for license information.

"""Read the parts of cloud-init's configuration that ds-identify honours.

Only `etc/cloud/cloud.cfg`, `etc/cloud/cloud.cfg.d/*.cfg` and
`etc/cloud/ds-identify.cfg` are consulted. `datasource_list` has to be
written on a single line as a flow sequence; cloud-init documents that
multi-line lists are not seen by ds-identify, so they are skipped here too.
"""

import dataclasses
import glob
import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple

from dsidentify import settings, util

LOG = logging.getLogger(__name__)

# datasource_list: [ Ec2, None ] with optional quoting of the key
DSLIST_LINE_RE = re.compile(
    r"""^(?P<q>["']?)datasource_list(?P=q)[ \t]*:[ \t]*"""
    r"""\[(?P<items>[^\]]*)\][ \t]*(?:#.*)?$"""
)


@dataclasses.dataclass(frozen=True)
class ConfigView:
    datasource_list: Optional[Tuple[str, ...]] = None
    datasource: Dict[str, Any] = dataclasses.field(default_factory=dict)
    disable_vmware_customization: Any = None
    # from ds-identify.cfg
    policy: Optional[str] = None
    dsname: Optional[str] = None

    @property
    def dslist(self) -> Tuple[str, ...]:
        if self.datasource_list is not None:
            return self.datasource_list
        return tuple(settings.DI_DSLIST_DEFAULT)

    def ds_config(self, name: str) -> Dict[str, Any]:
        cfg = self.datasource.get(name)
        return cfg if isinstance(cfg, dict) else {}

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        if self.datasource_list is not None:
            data["datasource_list"] = list(self.datasource_list)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigView":
        kwargs = dict(data)
        if kwargs.get("datasource_list") is not None:
            kwargs["datasource_list"] = tuple(kwargs["datasource_list"])
        return cls(**kwargs)


def parse_datasource_list(content: str) -> Optional[List[str]]:
    """Return the datasource_list defined in content, or None.

    The last single-line definition wins. Entries keep their case and lose
    any quoting.
    """
    found = None
    for line in content.splitlines():
        match = DSLIST_LINE_RE.match(line.rstrip("\r"))
        if not match:
            continue
        # yaml does not accept tabs as separators in flow sequences
        items = util.load_yaml(
            "[%s]" % match.group("items").replace("\t", " "),
            allowed=(list,),
        )
        if items is None or not all(
            isinstance(i, (str, int, float)) for i in items
        ):
            LOG.warning("Ignoring unparsable datasource_list: %s", line)
            continue
        found = [str(i) for i in items]
    return found


def config_files(root: str) -> List[str]:
    """cloud.cfg followed by cloud.cfg.d/*.cfg in lexical order."""
    files = [util.target_path(root, settings.CLOUD_CONFIG)]
    files.extend(
        sorted(
            glob.glob(
                os.path.join(
                    util.target_path(root, settings.CLOUD_CONFIG_D), "*.cfg"
                )
            )
        )
    )
    return [f for f in files if os.path.isfile(f)]


def read_dsid_config(root: str) -> Tuple[Optional[str], Optional[str]]:
    """Return (policy, datasource) from ds-identify.cfg."""
    fname = util.target_path(root, settings.DSID_CONFIG)
    if not os.path.isfile(fname):
        return None, None
    try:
        content = util.load_text_file(fname, quiet=True)
    except (IOError, OSError, ValueError) as e:
        util.logexc(LOG, "Failed reading %s: %s", fname, e)
        return None, None
    cfg = util.load_yaml(content, default={})
    policy = cfg.get("policy")
    dsname = cfg.get("datasource")
    return (
        str(policy) if policy is not None else None,
        str(dsname) if dsname is not None else None,
    )


def read_config(root: str) -> ConfigView:
    dslist = None
    datasource: Dict[str, Any] = {}
    vmware_cust = None
    for fname in config_files(root):
        try:
            content = util.load_text_file(fname)
        except (IOError, OSError, ValueError) as e:
            util.logexc(LOG, "Failed reading config file %s: %s", fname, e)
            continue
        found = parse_datasource_list(content)
        if found is not None:
            LOG.debug("datasource_list %s from %s", found, fname)
            dslist = tuple(found)
        cfg = util.load_yaml(content, default={})
        dscfg = cfg.get("datasource")
        if isinstance(dscfg, dict):
            for name, value in dscfg.items():
                if isinstance(value, dict) and isinstance(
                    datasource.get(name), dict
                ):
                    datasource[name] = {**datasource[name], **value}
                else:
                    datasource[name] = value
        if "disable_vmware_customization" in cfg:
            vmware_cust = cfg["disable_vmware_customization"]
    policy, dsname = read_dsid_config(root)
    return ConfigView(
        datasource_list=dslist,
        datasource=datasource,
        disable_vmware_customization=vmware_cust,
        policy=policy,
        dsname=dsname,
    )

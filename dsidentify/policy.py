# This file is part of ds-identify. See LICENSE file for license information.

"""Parsing and selection of the search policy.

A policy string looks like::

    search,found=all,maybe=all,notfound=disabled

The mode is one of search, report, disabled or enabled. Settings left out
of a policy string are taken from the default policy for the platform.
"""

import dataclasses
import logging
from enum import Enum
from typing import Mapping, Optional, Tuple

from dsidentify import settings, util
from dsidentify.errors import PolicyError

LOG = logging.getLogger(__name__)

FOUND_ALL = "all"
FOUND_FIRST = "first"
MAYBE_ALL = "all"
MAYBE_NONE = "none"
NOTFOUND_DISABLED = "disabled"
NOTFOUND_ENABLED = "enabled"

SETTINGS = {
    "found": (FOUND_ALL, FOUND_FIRST),
    "maybe": (MAYBE_ALL, MAYBE_NONE),
    "notfound": (NOTFOUND_DISABLED, NOTFOUND_ENABLED),
}


class Mode(Enum):
    SEARCH = "search"
    REPORT = "report"
    DISABLED = "disabled"
    ENABLED = "enabled"

    def __str__(self) -> str:
        return self.value


@dataclasses.dataclass(frozen=True)
class Policy:
    mode: Mode = Mode.SEARCH
    on_found: str = FOUND_ALL
    on_maybe: str = MAYBE_ALL
    on_notfound: str = NOTFOUND_DISABLED

    def __str__(self) -> str:
        return "%s,found=%s,maybe=%s,notfound=%s" % (
            self.mode,
            self.on_found,
            self.on_maybe,
            self.on_notfound,
        )


def _parse_token(tok: str) -> Tuple[str, object]:
    """Return the Policy field and value tok sets.

    @raises PolicyError: on anything that is not a known setting.
    """
    for mode in Mode:
        if tok == mode.value:
            return "mode", mode
    key, sep, val = tok.partition("=")
    if not sep or key not in SETTINGS:
        raise PolicyError("unknown policy token '%s'" % tok)
    if val not in SETTINGS[key]:
        raise PolicyError("invalid value '%s' for '%s'" % (val, key))
    return "on_" + key, val


def parse_policy(policy: str, default: Optional[Policy] = None) -> Policy:
    """Parse policy, taking unset or invalid settings from default."""
    if default is None:
        default = Policy()
    values = {}
    for tok in policy.split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            field, value = _parse_token(tok)
        except PolicyError as e:
            LOG.warning("Invalid policy '%s': %s. Ignoring it.", policy, e)
            continue
        values[field] = value
    return dataclasses.replace(default, **values)


def default_policy(
    uname_machine: str, env: Optional[Mapping[str, str]] = None
) -> Policy:
    """Built-in policy, which depends on whether the platform has DMI."""
    env = env or {}
    # aarch64 has dmi, but it is not used to identify platforms.
    if util.is_x86(uname_machine):
        name, fallback = "DI_DEFAULT_POLICY", settings.DI_DEFAULT_POLICY
    else:
        name = "DI_DEFAULT_POLICY_NO_DMI"
        fallback = settings.DI_DEFAULT_POLICY_NO_DMI
    base = parse_policy(fallback)
    override = env.get(name)
    if override:
        return parse_policy(override, base)
    return base


def select_policy(
    cmdline_params: Mapping[str, str],
    dsid_policy: Optional[str],
    uname_machine: str,
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[Policy, str]:
    """Return the policy in effect and where it came from.

    The kernel command line (ci.di.policy=) wins over ds-identify.cfg,
    which wins over the built-in default.
    """
    default = default_policy(uname_machine, env)
    if cmdline_params.get("ci.di.policy"):
        return (
            parse_policy(cmdline_params["ci.di.policy"], default),
            "kernel command line",
        )
    if dsid_policy:
        return parse_policy(dsid_policy, default), settings.DSID_CONFIG
    return default, "default"

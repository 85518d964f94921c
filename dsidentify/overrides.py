# This file is part of ds-identify. See LICENSE file for license information.

"""Operator and test directives that bypass normal evaluation.

Precedence, highest first: Disable, ForceList, ForceNone, TestSignals.
A directive that cannot be parsed is logged and treated as absent.
"""

import logging
import os
import re
from enum import Enum
from typing import List, Mapping, NamedTuple, Optional

from dsidentify import schema, settings, util
from dsidentify.signals import HostSnapshot, Marker

LOG = logging.getLogger(__name__)

DSNAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
FORCE_PARAMS = ("ci.ds", "ci.datasource")
TEST_SIGNALS_ENV = "DI_TEST_SIGNALS"


class OverrideKind(Enum):
    DISABLE = "disable"
    FORCE_LIST = "force-list"
    FORCE_NONE = "force-none"
    TEST_SIGNALS = "test-signals"

    def __str__(self) -> str:
        return self.value


class Override(NamedTuple):
    kind: OverrideKind
    payload: object
    source: str


def parse_force_value(value: str) -> Optional[List[str]]:
    """Split a comma separated datasource list, None if it is malformed."""
    names = [name.strip() for name in value.split(",")]
    if not value.strip() or not all(DSNAME_RE.match(n) for n in names):
        return None
    return names


def _force_sources(snapshot: HostSnapshot, env: Mapping[str, str]):
    values = util.cmdline_values(snapshot.kernel_cmdline, *FORCE_PARAMS)
    if values:
        yield "kernel command line", values[-1]
    if env.get("DI_DSNAME") is not None:
        yield "DI_DSNAME", env["DI_DSNAME"]
    if snapshot.config.dsname is not None:
        yield settings.DSID_CONFIG, snapshot.config.dsname


def find_disable(snapshot: HostSnapshot) -> Optional[Override]:
    if "disabled" in util.cmdline_values(
        snapshot.kernel_cmdline, "cloud-init"
    ):
        return Override(
            OverrideKind.DISABLE, None, "cloud-init=disabled on command line"
        )
    if Marker.DISABLED in snapshot.markers:
        return Override(OverrideKind.DISABLE, None, settings.DISABLED_MARKER)
    return None


def find_force(
    snapshot: HostSnapshot, env: Mapping[str, str]
) -> Optional[Override]:
    """First well formed force directive, as ForceList or ForceNone."""
    for source, value in _force_sources(snapshot, env):
        names = parse_force_value(value)
        if names is None:
            LOG.warning(
                "Ignoring malformed datasource '%s' from %s", value, source
            )
            continue
        if len(names) == 1 and names[0].lower() == settings.DS_NONE.lower():
            return Override(OverrideKind.FORCE_NONE, names, source)
        return Override(OverrideKind.FORCE_LIST, names, source)
    return None


def find_test_signals(env: Mapping[str, str]) -> Optional[Override]:
    """Load the snapshot named by DI_TEST_SIGNALS, if valid."""
    path = env.get(TEST_SIGNALS_ENV)
    if not path:
        return None
    if not os.path.isfile(path):
        LOG.warning("Ignoring %s: %s does not exist", TEST_SIGNALS_ENV, path)
        return None
    try:
        content = util.load_text_file(path)
    except (IOError, OSError, ValueError) as e:
        LOG.warning(
            "Ignoring %s: unable to read %s: %s", TEST_SIGNALS_ENV, path, e
        )
        return None
    data = util.load_yaml(content, default=None)
    if data is None:
        LOG.warning("Ignoring %s: %s is not a mapping", TEST_SIGNALS_ENV, path)
        return None
    try:
        schema.validate_test_signals(data)
    except schema.SchemaValidationError as e:
        LOG.warning("Ignoring %s: %s", TEST_SIGNALS_ENV, e)
        return None
    return Override(
        OverrideKind.TEST_SIGNALS, HostSnapshot.from_dict(data), path
    )


def resolve(
    snapshot: HostSnapshot, env: Mapping[str, str]
) -> Optional[Override]:
    """The highest precedence Disable or force directive, if any."""
    return find_disable(snapshot) or find_force(snapshot, env)

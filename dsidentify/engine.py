# This file is part of ds-identify. See LICENSE file for license information.

"""The decision engine.

A run walks a fixed sequence of states::

    INIT -> CHECK_OVERRIDE -> COLLECT_EVIDENCE -> EVALUATE_RULES
         -> FINALIZE -> DONE

COLLECT_EVIDENCE jumps straight to FINALIZE when the answer no longer
depends on the rules (a Disable or force directive, a disabled or enabled
policy, or a configured list that names a single datasource).
"""

import logging
import os
from enum import Enum
from typing import List, Mapping, Optional

from dsidentify import collectors, normalize, overrides, rules, settings
from dsidentify.decision import DatasourceCandidate, Decision, Outcome, Status
from dsidentify.normalize import NormalizedHost
from dsidentify.overrides import Override, OverrideKind
from dsidentify.policy import (
    FOUND_FIRST,
    NOTFOUND_ENABLED,
    Mode,
    Policy,
    select_policy,
)
from dsidentify.signals import HostSnapshot

LOG = logging.getLogger(__name__)


class State(Enum):
    INIT = "init"
    CHECK_OVERRIDE = "check-override"
    COLLECT_EVIDENCE = "collect-evidence"
    EVALUATE_RULES = "evaluate-rules"
    FINALIZE = "finalize"
    DONE = "done"

    def __str__(self) -> str:
        return self.value


def configured_list(dslist) -> Optional[List[str]]:
    """The configured list if it leaves nothing to search, else None.

    That is a single entry, or a single entry followed by None.
    """
    dslist = list(dslist)
    if len(dslist) == 1:
        return dslist
    if len(dslist) == 2 and dslist[1] == settings.DS_NONE:
        return dslist
    return None


class DecisionEngine:
    """Run the state machine once and produce a Decision.

    `env` stands in for the process environment; nothing is read from
    os.environ directly so that runs are reproducible.
    """

    def __init__(
        self,
        root: str = settings.DEFAULT_ROOT,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.root = root
        self.env = dict(os.environ if env is None else env)
        self.state = State.INIT
        self.snapshot: Optional[HostSnapshot] = None
        self.host: Optional[NormalizedHost] = None
        self.override: Optional[Override] = None
        self.policy: Optional[Policy] = None
        self.policy_source = ""
        self.candidates: List[DatasourceCandidate] = []
        self.decision: Optional[Decision] = None
        self._handlers = {
            State.INIT: self._init,
            State.CHECK_OVERRIDE: self._check_override,
            State.COLLECT_EVIDENCE: self._collect_evidence,
            State.EVALUATE_RULES: self._evaluate_rules,
            State.FINALIZE: self._finalize,
        }

    def run(self) -> Decision:
        while self.state is not State.DONE:
            handler = self._handlers[self.state]
            next_state = handler()
            LOG.debug("state %s -> %s", self.state, next_state)
            self.state = next_state
        assert self.decision is not None
        return self.decision

    def _init(self) -> State:
        LOG.debug("ds-identify run with root %s", self.root)
        return State.CHECK_OVERRIDE

    def _check_override(self) -> State:
        test_signals = overrides.find_test_signals(self.env)
        if test_signals is not None:
            LOG.debug("Using test signals from %s", test_signals.source)
            self.override = test_signals
        return State.COLLECT_EVIDENCE

    def _collect_evidence(self) -> State:
        if self.override and self.override.kind is OverrideKind.TEST_SIGNALS:
            self.snapshot = self.override.payload
        else:
            self.snapshot = collectors.collect(self.root, self.env)
        snapshot = self.snapshot
        self.host = normalize.normalize(
            snapshot,
            self.env.get(
                "DI_EC2_STRICT_ID_DEFAULT", settings.DI_EC2_STRICT_ID_DEFAULT
            ),
        )
        self.policy, self.policy_source = select_policy(
            self.host.cmdline_params,
            snapshot.config.policy,
            snapshot.uname_machine,
            self.env,
        )
        directive = overrides.resolve(snapshot, self.env)
        if directive is not None:
            self.override = directive
        self.log_debug_info()
        if directive is not None:
            LOG.debug("%s from %s", directive.kind, directive.source)
            return State.FINALIZE
        if self.policy.mode in (Mode.DISABLED, Mode.ENABLED):
            return State.FINALIZE
        if configured_list(snapshot.config.dslist) is not None:
            return State.FINALIZE
        return State.EVALUATE_RULES

    def _evaluate_rules(self) -> State:
        assert self.host is not None and self.policy is not None
        results = rules.evaluate(self.host, self.host.dslist)
        self.candidates = rules.apply_maybe_policy(results, self.policy)
        return State.FINALIZE

    def _finalize(self) -> State:
        self.decision = self.decide()
        LOG.debug(
            "Decision: %s %s (%s)",
            self.decision.outcome,
            list(self.decision.names),
            self.decision.reason,
        )
        return State.DONE

    def decide(self) -> Decision:
        policy = self.policy
        assert policy is not None and self.snapshot is not None
        override = self.override
        if override and override.kind is OverrideKind.DISABLE:
            return Decision(
                Outcome.DISABLED, reason="disabled by %s" % override.source
            )
        if policy.mode is Mode.DISABLED:
            return Decision(
                Outcome.DISABLED,
                reason="policy disabled via %s" % self.policy_source,
            )
        if policy.mode is Mode.ENABLED:
            return Decision(
                Outcome.ENABLED,
                reason="policy enabled via %s" % self.policy_source,
            )
        if override and override.kind is OverrideKind.FORCE_LIST:
            return Decision(
                Outcome.FORCED,
                tuple(
                    DatasourceCandidate(name, Status.FORCED)
                    for name in override.payload
                ),
                reason="datasource forced by %s" % override.source,
            )
        if override and override.kind is OverrideKind.FORCE_NONE:
            return Decision(
                Outcome.NONE,
                reason="datasource None forced by %s" % override.source,
            )
        single = configured_list(self.snapshot.config.dslist)
        if single is not None:
            return Decision(
                Outcome.DATASOURCE,
                tuple(DatasourceCandidate(n, Status.FORCED) for n in single),
                reason="datasource_list has a single entry",
                verbatim=True,
            )
        return self.decide_from_rules()

    def decide_from_rules(self) -> Decision:
        policy = self.policy
        assert policy is not None
        found = [c for c in self.candidates if c.status is Status.FOUND]
        maybes = [c for c in self.candidates if c.status is Status.MAYBE]
        if found:
            if policy.on_found == FOUND_FIRST:
                found = found[:1]
            chosen, reason = found, "found %d datasource(s)" % len(found)
        elif maybes:
            # apply_maybe_policy already removed these unless maybe=all
            chosen, reason = maybes, "found %d possible datasource(s)" % len(
                maybes
            )
        else:
            chosen, reason = [], "no datasource found"

        if policy.mode is Mode.REPORT:
            return Decision(
                Outcome.ENABLED,
                tuple(chosen),
                reason="report mode: %s" % reason,
            )
        if chosen:
            return Decision(Outcome.DATASOURCE, tuple(chosen), reason=reason)
        if policy.on_notfound == NOTFOUND_ENABLED:
            return Decision(
                Outcome.ENABLED,
                reason="%s, notfound=enabled" % reason,
            )
        return Decision(Outcome.NONE, reason="%s, notfound=disabled" % reason)

    def log_debug_info(self):
        """Log every variable the decision is based on."""
        snap = self.snapshot
        assert snap is not None
        dsname = ""
        if self.override and self.override.kind in (
            OverrideKind.FORCE_LIST,
            OverrideKind.FORCE_NONE,
        ):
            dsname = ",".join(self.override.payload)
        info = (
            ("DMI_PRODUCT_NAME", snap.product_name),
            ("DMI_SYS_VENDOR", snap.sys_vendor),
            ("DMI_PRODUCT_SERIAL", snap.product_serial),
            ("DMI_PRODUCT_UUID", snap.product_uuid),
            ("PID_1_PRODUCT_NAME", snap.pid1_product_name),
            ("DMI_CHASSIS_ASSET_TAG", snap.chassis_asset_tag),
            ("DMI_BOARD_NAME", snap.board_name),
            ("FS_LABELS", ",".join(snap.fs_labels)),
            ("ISO9660_DEVS", ",".join(d for d, _ in snap.iso9660_devs)),
            ("KERNEL_CMDLINE", snap.kernel_cmdline),
            ("VIRT", snap.virt),
            ("UNAME_KERNEL_NAME", snap.uname_kernel_name),
            ("UNAME_KERNEL_VERSION", snap.uname_kernel_version),
            ("UNAME_MACHINE", snap.uname_machine),
            ("DSNAME", dsname),
            ("DSLIST", " ".join(snap.config.dslist)),
            ("MODE", self.policy.mode if self.policy else ""),
            ("ON_FOUND", self.policy.on_found if self.policy else ""),
            ("ON_MAYBE", self.policy.on_maybe if self.policy else ""),
            ("ON_NOTFOUND", self.policy.on_notfound if self.policy else ""),
        )
        for name, value in info:
            LOG.debug("%s=%s", name, value)
        present = [s for s in snap.signals() if s.present]
        LOG.debug(
            "%d host signals present: %s",
            len(present),
            " ".join(sorted({str(s.kind) for s in present})),
        )

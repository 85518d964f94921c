# This file is part of ds-identify. See LICENSE file for license information.

"""Write the decision where cloud-init looks for it."""

import logging
import os

from dsidentify import atomic_helper, settings, util
from dsidentify.decision import Decision, Outcome
from dsidentify.errors import EmissionError

LOG = logging.getLogger(__name__)

EXIT_CODES = {
    Outcome.DATASOURCE: settings.RC_FOUND,
    Outcome.FORCED: settings.RC_FOUND,
    Outcome.ENABLED: settings.RC_FOUND,
    Outcome.NONE: settings.RC_NOT_FOUND,
    Outcome.DISABLED: settings.RC_NOT_FOUND,
}


def run_dir(root: str, kernel_name: str = "Linux") -> str:
    """cloud-init's run directory beneath root; BSDs have no /run."""
    if kernel_name == "Linux":
        return os.path.join(root, settings.RUN_DIR)
    return os.path.join(root, settings.RUN_DIR_BSD)


def _flow_list(names) -> str:
    return "[ %s ]" % ", ".join(names) if names else "[ ]"


def _with_none(names):
    names = list(names)
    if settings.DS_NONE not in names:
        names.append(settings.DS_NONE)
    return names


def render(decision: Decision) -> str:
    """Return the cloud.cfg content for decision."""
    names = decision.names
    if decision.outcome in (Outcome.DATASOURCE, Outcome.FORCED):
        if not decision.verbatim:
            names = _with_none(names)
        return "datasource_list: %s\n" % _flow_list(names)
    if decision.outcome is Outcome.NONE:
        names = [settings.DS_NONE]
    elif decision.outcome is Outcome.ENABLED:
        names = _with_none(names)
    else:
        names = []
    lines = []
    if decision.reason:
        lines.append("# ds-identify: %s" % decision.reason)
    lines.append("di_report:")
    lines.append("  datasource_list: %s" % _flow_list(names))
    return "\n".join(lines) + "\n"


def exit_code(decision: Decision) -> int:
    return EXIT_CODES[decision.outcome]


def emit(decision: Decision, root: str, kernel_name: str = "Linux") -> int:
    """Write decision under root and return the exit code for it.

    @raises EmissionError: when either file cannot be written. Nothing
        written by this call is left behind.
    """
    rdir = run_dir(root, kernel_name)
    cfg_path = os.path.join(rdir, settings.RUN_CFG_NAME)
    result_path = os.path.join(rdir, settings.RESULT_NAME)
    rc = exit_code(decision)
    content = render(decision)
    written = []
    for path, data in ((cfg_path, content), (result_path, "%d\n" % rc)):
        try:
            atomic_helper.write_text(path, data)
        except OSError as e:
            for done in written:
                util.del_file(done)
            raise EmissionError(path, e) from e
        written.append(path)
    LOG.debug("Wrote %s: %s", cfg_path, content.strip())
    return rc

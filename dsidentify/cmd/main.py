#!/usr/bin/env python3

# This file is part of ds-identify. See LICENSE file for license information.

"""Identify the datasource of this host and write it for cloud-init."""

import argparse
import logging
import os
import sys

from dsidentify import collectors, emitter, log, settings, util, version
from dsidentify.engine import DecisionEngine
from dsidentify.errors import EmissionError

NAME = "ds-identify"

LOG = logging.getLogger(__name__)


def get_parser(parser=None):
    """Build or extend an arg parser for ds-identify.

    @param parser: Optional existing ArgumentParser instance which will be
        extended to support the args of this utility.

    @returns: ArgumentParser with proper argument configuration.
    """
    if not parser:
        parser = argparse.ArgumentParser(
            prog=NAME,
            description=(
                "Decide which cloud-init datasources apply to this host"
            ),
        )
    parser.add_argument(
        "-r",
        "--root",
        type=str,
        default=None,
        help=(
            "Root directory of the host to inspect. Defaults to $PATH_ROOT"
            " or %s" % settings.DEFAULT_ROOT
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Log debug messages to stderr.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s " + version.version_string(),
    )
    return parser


def resolve_root(args, env) -> str:
    return args.root or env.get("PATH_ROOT") or settings.DEFAULT_ROOT


def setup_logging(root: str, verbose: bool):
    log.configure_root_logger(verbose)
    kernel_name = collectors.read_uname()[0]
    rdir = emitter.run_dir(root, kernel_name)
    try:
        util.ensure_dir(rdir)
    except OSError as e:
        LOG.warning("Unable to create %s: %s", rdir, e)
        return None
    return log.setup_file_logging(os.path.join(rdir, settings.LOG_NAME))


def handle_args(name, args):
    """Handle calls to the 'ds-identify' cli.

    @return: 0 when a datasource list was written, 1 when cloud-init should
        stay disabled, 3 when no decision could be made or written.
    """
    env = dict(os.environ)
    root = resolve_root(args, env)
    setup_logging(root, args.verbose)
    LOG.debug("%s running against %s", name, root)
    engine = DecisionEngine(root, env)
    try:
        decision = engine.run()
        kernel_name = engine.snapshot.uname_kernel_name
        rc = emitter.emit(decision, root, kernel_name)
    except EmissionError as e:
        LOG.error("%s", e)
        rc = settings.RC_FATAL
    except Exception as e:
        util.logexc(LOG, "%s failed to decide: %s", name, e)
        rc = settings.RC_FATAL
    log.flush_loggers(LOG)
    return rc


def main():
    """Tool to identify the datasources for cloud-init."""
    os.environ["PATH"] = util.ensure_sane_path(os.environ)["PATH"]
    parser = get_parser()
    sys.exit(handle_args(NAME, parser.parse_args()))


if __name__ == "__main__":
    main()

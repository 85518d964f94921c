# This file is part of ds-identify. See LICENSE file for license information.

import logging
import os
from typing import Dict, List, Optional, Union

import yaml

LOG = logging.getLogger(__name__)

FALSE_STRINGS = ("off", "0", "no", "false")

# Directories ds-identify expects on PATH, even when started by a generator
# with a minimal environment.
SANE_PATH = ("/sbin", "/bin", "/usr/sbin", "/usr/bin")


def decode_binary(blob: Union[str, bytes], encoding="utf-8") -> str:
    # Converts a binary type into a text type using given encoding.
    return blob if isinstance(blob, str) else blob.decode(encoding=encoding)


def is_false(val, addons=None):
    if isinstance(val, (bool)):
        return val is False
    check_set = FALSE_STRINGS
    if addons:
        check_set = list(check_set) + addons
    if str(val).lower().strip() in check_set:
        return True
    return False


def target_path(root=None, path=None):
    # return 'path' inside root, accepting root as None
    if root in (None, ""):
        root = "/"
    else:
        root = os.path.abspath(root)
        # abspath("//") returns "//" specifically for 2 slashes.
        if root.startswith("//"):
            root = root[1:]

    if not path:
        return root

    # os.path.join("/etc", "/foo") returns "/foo". Chomp all leading /.
    while len(path) and path[0] == "/":
        path = path[1:]
    return os.path.join(root, path)


def load_binary_file(
    fname: Union[str, os.PathLike], *, quiet: bool = False
) -> bytes:
    LOG.debug("Reading from %s (quiet=%s)", fname, quiet)
    try:
        with open(fname, "rb") as ifh:
            contents = ifh.read()
    except FileNotFoundError:
        if not quiet:
            raise
        contents = b""
    LOG.debug("Read %s bytes from %s", len(contents), fname)
    return contents


def load_text_file(
    fname: Union[str, os.PathLike], *, quiet: bool = False
) -> str:
    return decode_binary(load_binary_file(fname, quiet=quiet))


def read_first_line(fname: Union[str, os.PathLike]) -> Optional[str]:
    """Return the stripped first line of fname or None if unreadable."""
    try:
        with open(fname, "r", encoding="utf-8", errors="replace") as fp:
            return fp.readline().strip()
    except (IOError, OSError) as e:
        LOG.debug("Could not read %s: %s", fname, e)
        return None


def load_yaml(blob, default=None, allowed=(dict,)):
    loaded = default
    blob = decode_binary(blob)
    try:
        LOG.debug(
            "Attempting to load yaml from string "
            "of length %s with allowed root types %s",
            len(blob),
            allowed,
        )
        converted = yaml.safe_load(blob)
        if converted is None:
            LOG.debug("loaded blob returned None, returning default.")
            converted = default
        elif not isinstance(converted, allowed):
            # Yes this will just be caught, but thats ok for now...
            raise TypeError(
                "Yaml load allows %s root types, but got %s instead"
                % (allowed, type(converted).__name__)
            )
        loaded = converted
    except (yaml.YAMLError, TypeError, ValueError) as e:
        msg = "Failed loading yaml blob"
        mark = None
        if hasattr(e, "context_mark") and getattr(e, "context_mark"):
            mark = getattr(e, "context_mark")
        elif hasattr(e, "problem_mark") and getattr(e, "problem_mark"):
            mark = getattr(e, "problem_mark")
        if mark:
            msg += (
                '. Invalid format at line {line} column {col}: "{err}"'.format(
                    line=mark.line + 1, col=mark.column + 1, err=e
                )
            )
        else:
            msg += ". {err}".format(err=e)
        LOG.warning(msg)
    return loaded


def parse_proc_env(contents: str) -> Dict[str, str]:
    """Parse NUL separated KEY=value pairs as found in /proc/<pid>/environ."""
    env = {}
    for tok in contents.split("\x00"):
        if not tok or "=" not in tok:
            continue
        (name, val) = tok.split("=", 1)
        if name:
            env[name] = val
    return env


def cmdline_values(cmdline: str, *keys: str) -> List[str]:
    """Return the values of key=value tokens in cmdline for any of keys.

    Values are returned in command line order so that callers can take the
    last one, matching how the kernel treats repeated parameters.
    """
    found = []
    for tok in cmdline.split():
        key, sep, value = tok.partition("=")
        if sep and key in keys:
            found.append(value)
    return found


def is_x86(uname_arch: str) -> bool:
    return uname_arch in ("x86_64", "amd64") or (
        len(uname_arch) == 4
        and uname_arch[0] == "i"
        and uname_arch[2:] == "86"
    )


def ensure_dir(path, mode=None):
    if not os.path.isdir(path):
        os.makedirs(path)
    if mode is not None:
        os.chmod(path, mode)


def del_file(path):
    LOG.debug("Attempting to remove %s", path)
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def ensure_sane_path(env: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of env whose PATH contains the standard sbin/bin dirs."""
    env = dict(env)
    paths = [p for p in env.get("PATH", "").split(os.pathsep) if p]
    missing = [p for p in SANE_PATH if p not in paths]
    env["PATH"] = os.pathsep.join(missing + paths)
    return env


def logexc(
    log, msg, *args, log_level: int = logging.WARNING, exc_info=True
) -> None:
    log.log(log_level, msg, *args)
    log.debug(msg, exc_info=exc_info, *args)

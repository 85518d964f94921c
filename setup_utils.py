import os
import re
from typing import List

TOPDIR = os.path.dirname(os.path.realpath(__file__))


def version_to_pep440(version: str) -> str:
    # a git describe style version like 1.2.0-15-g7f97aee24 is invalid
    # under PEP 440. If we replace the first - with a + that should give us
    # a valid version.
    return version.replace("-", "+", 1)


def get_version() -> str:
    with open(os.path.join(TOPDIR, "dsidentify", "version.py")) as fp:
        match = re.search(r'^__VERSION__ = "([^"]+)"', fp.read(), re.M)
    if not match:
        raise RuntimeError("Unable to find __VERSION__ in version.py")
    return version_to_pep440(match.group(1))


def read_requires(fname: str = "requirements.txt") -> List[str]:
    """Requirement lines of fname, without comments or blank lines."""
    deps = []
    with open(os.path.join(TOPDIR, fname)) as fp:
        for line in fp:
            line = line.split("#", 1)[0].strip()
            if line:
                deps.append(line)
    return deps

# This file is part of ds-identify. See LICENSE file for license information.


class DsIdentifyError(Exception):
    pass


class PolicyError(DsIdentifyError):
    """A policy string contained a token that could not be understood."""


class EmissionError(DsIdentifyError):
    """The decision could not be written where cloud-init will look for it."""

    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__("failed to write %s: %s" % (path, reason))

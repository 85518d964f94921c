# This file is part of ds-identify. See LICENSE file for license information.

import dataclasses
from enum import Enum
from typing import NamedTuple, Tuple


class Status(Enum):
    FOUND = "found"
    NOT_FOUND = "not-found"
    MAYBE = "maybe"
    FORCED = "forced"
    EXCLUDED = "excluded"

    def __str__(self) -> str:
        return self.value


class Outcome(Enum):
    DATASOURCE = "datasource"
    FORCED = "forced"
    NONE = "none"
    DISABLED = "disabled"
    ENABLED = "enabled"

    def __str__(self) -> str:
        return self.value


# Statuses that may appear in an emitted list.
EMITTABLE = (Status.FOUND, Status.FORCED, Status.MAYBE)


class DatasourceCandidate(NamedTuple):
    name: str
    status: Status


@dataclasses.dataclass(frozen=True)
class Decision:
    """The single result of one run.

    candidates holds what gets written out, in emission order. For an
    Enabled outcome it holds what a search found (possibly nothing).
    `verbatim` marks a configured list that is written exactly as given.
    """

    outcome: Outcome
    candidates: Tuple[DatasourceCandidate, ...] = ()
    reason: str = ""
    verbatim: bool = False

    def __post_init__(self):
        for candidate in self.candidates:
            if candidate.status not in EMITTABLE:
                raise ValueError(
                    "Candidate %s with status %s cannot be emitted"
                    % (candidate.name, candidate.status)
                )

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.candidates)

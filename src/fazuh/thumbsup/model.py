from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from types import MappingProxyType
from typing import Self

PackageName = str


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class VotedPackageRecord:
    """One row of the AUR package listing.

    `offset` is the listing offset of the page the row was found on.
    """

    name: PackageName
    voted: bool
    offset: int = 0
    version: str = ""
    votes: int = 0
    popularity: float = 0.0
    notify: bool = False
    description: str = ""
    maintainer: str = ""

    @property
    def is_orphan(self) -> bool:
        return self.maintainer == "orphan"


@dataclass(frozen=True)
class VotePage:
    records: tuple[VotedPackageRecord, ...]
    offset: int
    has_next: bool

    @property
    def all_voted(self) -> bool:
        """True if every row on the page is voted.

        The listing is sorted voted-first, so a page with an unvoted row is the
        last one that can hold voted packages.
        """
        return all(record.voted for record in self.records)


@dataclass(frozen=True)
class PackagePage:
    """Vote controls scraped from a package detail page.

    `voted` is None when the page offers no vote form.
    """

    voted: bool | None
    token: str | None
    pkgbase_path: str | None


@dataclass(frozen=True)
class ReconciliationPlan:
    to_vote: frozenset[PackageName]
    to_unvote: frozenset[PackageName]

    @classmethod
    def compute(cls, installed: Iterable[PackageName], voted: Iterable[PackageName]) -> Self:
        installed_set = frozenset(installed)
        voted_set = frozenset(voted)
        return cls(to_vote=installed_set - voted_set, to_unvote=voted_set - installed_set)

    @property
    def is_empty(self) -> bool:
        return not self.to_vote and not self.to_unvote


class ActionStatus(Enum):
    VOTED = "Voted"
    ALREADY_VOTED = "Already voted"
    UNVOTED = "Unvoted"
    ALREADY_UNVOTED = "Already unvoted"
    NOT_AVAILABLE = "N/A"
    FAILED = "Failed"

    @property
    def ok(self) -> bool:
        return self not in (ActionStatus.FAILED, ActionStatus.NOT_AVAILABLE)


@dataclass(frozen=True)
class ActionOutcome:
    name: PackageName
    status: ActionStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status.ok


class OutcomeReport:
    """Per-package outcomes collected while executing a plan.

    Outcomes are recorded one by one; `freeze()` returns a read-only view and
    rejects any later `record()`.
    """

    def __init__(self):
        self._outcomes: dict[PackageName, ActionOutcome] = {}
        self._frozen = False

    def record(self, outcome: ActionOutcome):
        if self._frozen:
            raise RuntimeError("OutcomeReport is frozen.")
        self._outcomes[outcome.name] = outcome

    def freeze(self) -> Mapping[PackageName, ActionOutcome]:
        self._frozen = True
        return MappingProxyType(self._outcomes)


@dataclass(frozen=True)
class ReconcileReport:
    plan: ReconciliationPlan
    currently_voted: frozenset[PackageName]
    outcomes: Mapping[PackageName, ActionOutcome]
    skipped: frozenset[PackageName] = frozenset()

    @property
    def failed(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes.values() if o.status is ActionStatus.FAILED]

    @property
    def ok(self) -> bool:
        """True if every attempted action succeeded."""
        return not self.failed

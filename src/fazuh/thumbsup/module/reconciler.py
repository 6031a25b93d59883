import asyncio
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from enum import Enum

from loguru import logger

from fazuh.thumbsup.aur.client import AurClient
from fazuh.thumbsup.error import ActionError
from fazuh.thumbsup.error import AuthNetworkError
from fazuh.thumbsup.error import FetchError
from fazuh.thumbsup.error import InternalError
from fazuh.thumbsup.error import NotAuthorizedError
from fazuh.thumbsup.error import SessionExpiredError
from fazuh.thumbsup.model import ActionOutcome
from fazuh.thumbsup.model import ActionStatus
from fazuh.thumbsup.model import Credentials
from fazuh.thumbsup.model import OutcomeReport
from fazuh.thumbsup.model import PackageName
from fazuh.thumbsup.model import ReconciliationPlan
from fazuh.thumbsup.model import ReconcileReport
from fazuh.thumbsup.model import VotedPackageRecord
from fazuh.thumbsup.model import VotePage


class Stage(Enum):
    START = 0
    AUTHENTICATED = 1
    LISTED = 2
    DIFFED = 3
    EXECUTED = 4
    REPORTED = 5


class Reconciler:
    """Keeps the AUR votes of one account in sync with the installed packages.

    A run logs in, collects every voted package across all listing pages,
    diffs them against the installed set, then votes and unvotes package by
    package. A failing package is recorded in the report and does not stop the
    others. The client is owned by this object for the duration of the run.
    """

    def __init__(
        self,
        client: AurClient,
        credentials: Credentials,
        workers: int = 8,
        verify_exists: bool = True,
    ):
        self.client = client
        self.workers = max(1, workers)
        self.verify_exists = verify_exists
        self.stage = Stage.START
        self._credentials = credentials

    async def run(self, installed: Iterable[PackageName]) -> ReconcileReport:
        """Votes installed-but-unvoted packages and unvotes voted-but-removed ones.

        Raises:
            InvalidCredentialsError: Login was rejected. Nothing else ran.
            FetchError: The voted listing could not be collected. No action ran.
        """
        installed_set = frozenset(installed)
        self.stage = Stage.START

        await self.authenticate()
        voted = await self.collect_voted()

        plan = ReconciliationPlan.compute(installed_set, voted)
        self._advance(Stage.DIFFED)
        logger.info(f"{len(plan.to_vote)} package(s) to vote, {len(plan.to_unvote)} to unvote.")

        to_vote = plan.to_vote
        skipped: frozenset[PackageName] = frozenset()
        if self.verify_exists and to_vote:
            to_vote, skipped = await self._filter_available(to_vote)

        report = OutcomeReport()
        await self._execute(to_vote, self.client.vote, report)
        await self._execute(plan.to_unvote, self.client.unvote, report)
        self._advance(Stage.EXECUTED)

        result = ReconcileReport(
            plan=plan,
            currently_voted=frozenset(voted),
            outcomes=report.freeze(),
            skipped=skipped,
        )
        self._advance(Stage.REPORTED)

        if result.ok:
            logger.success("Votes are in sync with installed packages.")
        else:
            logger.warning(f"{len(result.failed)} action(s) failed.")
        return result

    async def authenticate(self):
        await asyncio.to_thread(self.client.login, self._credentials)
        self._advance(Stage.AUTHENTICATED)

    async def collect_voted(self) -> dict[PackageName, VotedPackageRecord]:
        """Pages through the voted-first listing and returns every voted package.

        A name seen on more than one page keeps its last observed state.
        """
        seen: dict[PackageName, VotedPackageRecord] = {}
        offset = 0
        while True:
            page = await self._fetch_page(offset)
            for record in page.records:
                seen[record.name] = record

            # Sorted voted-first: a page with an unvoted row ends the voted packages.
            if not page.records or not page.has_next or not page.all_voted:
                break
            offset += self.client.page_size

        voted = {name: record for name, record in seen.items() if record.voted}
        self._advance(Stage.LISTED)
        logger.info(f"Found {len(voted)} voted package(s).")
        return voted

    async def list_voted(self) -> list[VotedPackageRecord]:
        self.stage = Stage.START
        await self.authenticate()
        return list((await self.collect_voted()).values())

    async def check(self, names: Iterable[PackageName]) -> dict[PackageName, bool | None]:
        """Returns the vote state of each package; None if it is not on the AUR."""
        self.stage = Stage.START
        await self.authenticate()

        result: dict[PackageName, bool | None] = {}
        for name in names:
            try:
                result[name] = await asyncio.to_thread(self.client.vote_state, name)
            except SessionExpiredError:
                await self._relogin()
                result[name] = await asyncio.to_thread(self.client.vote_state, name)
        return result

    async def vote(self, names: Iterable[PackageName]) -> Mapping[PackageName, ActionOutcome]:
        self.stage = Stage.START
        await self.authenticate()
        report = OutcomeReport()
        await self._execute(dict.fromkeys(names), self.client.vote, report, sort=False)
        return report.freeze()

    async def unvote(self, names: Iterable[PackageName]) -> Mapping[PackageName, ActionOutcome]:
        self.stage = Stage.START
        await self.authenticate()
        report = OutcomeReport()
        await self._execute(dict.fromkeys(names), self.client.unvote, report, sort=False)
        return report.freeze()

    async def unvote_all(self) -> Mapping[PackageName, ActionOutcome]:
        self.stage = Stage.START
        await self.authenticate()
        voted = await self.collect_voted()
        report = OutcomeReport()
        await self._execute(voted, self.client.unvote, report, sort=False)
        return report.freeze()

    async def close(self):
        """Logs out and releases the HTTP session."""
        await asyncio.to_thread(self.client.logout)
        self.client.close()

    def _advance(self, stage: Stage):
        if stage.value != self.stage.value + 1:
            raise InternalError(f"Cannot go from {self.stage.name} to {stage.name}.")
        self.stage = stage

    async def _relogin(self):
        logger.warning("Session expired. Logging in again.")
        await asyncio.to_thread(self.client.login, self._credentials)

    async def _fetch_page(self, offset: int) -> VotePage:
        try:
            return await asyncio.to_thread(self.client.fetch_voted_page, offset)
        except SessionExpiredError:
            await self._relogin()
            # Listing order is stable server-side, so resume at the same offset.
            return await asyncio.to_thread(self.client.fetch_voted_page, offset)

    async def _filter_available(
        self, names: Iterable[PackageName]
    ) -> tuple[frozenset[PackageName], frozenset[PackageName]]:
        """Splits names into (on the AUR, not on the AUR) with bounded concurrency."""
        semaphore = asyncio.Semaphore(self.workers)

        async def exists(name: PackageName) -> tuple[PackageName, bool]:
            async with semaphore:
                try:
                    return name, await asyncio.to_thread(self.client.package_exists, name)
                except FetchError as e:
                    # Let the vote attempt report its own outcome.
                    logger.warning(f"Cannot verify {name} is on the AUR: {e}")
                    return name, True

        results = await asyncio.gather(*(exists(name) for name in sorted(names)))
        available = frozenset(name for name, ok in results if ok)
        missing = frozenset(name for name, ok in results if not ok)
        for name in sorted(missing):
            logger.info(f"Skipping {name}: not an AUR package.")
        return available, missing

    async def _execute(
        self,
        names: Iterable[PackageName],
        action: Callable[[PackageName], ActionStatus],
        report: OutcomeReport,
        sort: bool = True,
    ):
        for name in sorted(names) if sort else list(names):
            report.record(await self._act(name, action))

    async def _act(
        self, name: PackageName, action: Callable[[PackageName], ActionStatus]
    ) -> ActionOutcome:
        try:
            try:
                status = await asyncio.to_thread(action, name)
            except SessionExpiredError:
                await self._relogin()
                try:
                    status = await asyncio.to_thread(action, name)
                except SessionExpiredError as e:
                    raise NotAuthorizedError(str(e)) from e
        except (ActionError, AuthNetworkError) as e:
            logger.error(f"{name}: {e}")
            return ActionOutcome(name=name, status=ActionStatus.FAILED, reason=str(e))

        if status is ActionStatus.NOT_AVAILABLE:
            logger.warning(f"{name}: not available on the AUR.")
        else:
            logger.success(f"{name}: {status.value}")
        return ActionOutcome(name=name, status=status)

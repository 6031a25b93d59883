"""Plain text rendering of command results."""

from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping

from fazuh.thumbsup.model import ActionOutcome
from fazuh.thumbsup.model import ReconcileReport
from fazuh.thumbsup.model import VotedPackageRecord
from fazuh.thumbsup.pacman import Versioning
from fazuh.thumbsup.pacman import vercmp


def format_outcome(outcome: ActionOutcome) -> str:
    line = f"{outcome.name}    {outcome.status.value}"
    if outcome.reason:
        line += f" ({outcome.reason})"
    return line


def format_outcomes(outcomes: Iterable[ActionOutcome]) -> list[str]:
    return [format_outcome(o) for o in outcomes]


def format_vote_state(name: str, voted: bool | None) -> str:
    match voted:
        case True:
            state = "Yes"
        case False:
            state = "No"
        case _:
            state = "N/A"
    return f"{name} {state}"


def format_voted(
    record: VotedPackageRecord,
    installed: Mapping[str, str],
    compare: Callable[[str, str], Versioning] = vercmp,
) -> str:
    """One line of the voted package listing.

    Shows the AUR version, the installed version compared against it, and
    whether the package is orphaned.
    """
    status = []

    local_version = installed.get(record.name)
    if local_version is not None:
        match compare(local_version, record.version):
            case Versioning.OLDER:
                status.append(f"Installed: {local_version}, Outdated")
            case Versioning.NEWER:
                status.append(f"Installed: {local_version}, Newer")
            case _:
                status.append(f"Installed: {local_version}")

    if record.is_orphan:
        status.append("Orphaned")

    line = f"{record.name} {record.version}"
    if status:
        line += f" [{', '.join(status)}]"
    return line


def format_report(report: ReconcileReport) -> list[str]:
    lines = format_outcomes(report.outcomes[name] for name in sorted(report.outcomes))
    for name in sorted(report.skipped):
        lines.append(f"{name}    Skipped (not on the AUR)")
    if not lines:
        lines.append("Nothing to do.")
    return lines

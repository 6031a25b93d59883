"""Main entry point for the Thumbsup application.

Handles command-line argument parsing and dispatches execution to the
requested subcommand.
"""

import argparse
import asyncio
import getpass
import sys

from loguru import logger

from fazuh.thumbsup import display
from fazuh.thumbsup import pacman
from fazuh.thumbsup.aur.client import AurClient
from fazuh.thumbsup.config import DEFAULT_CONFIG_FILE
from fazuh.thumbsup.config import Config
from fazuh.thumbsup.config import create_config
from fazuh.thumbsup.error import ThumbsupError
from fazuh.thumbsup.module.reconciler import Reconciler

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thumbsup", description="Manage votes for installed AUR packages."
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help=f"Configuration file (default: {DEFAULT_CONFIG_FILE}).",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase log verbosity."
    )
    parser.add_argument(
        "--log-dir", type=str, default=None, help="Also write rotating logs into this directory."
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("vote", help="Vote for packages").add_argument("packages", nargs="+")
    sub.add_parser("unvote", help="Unvote packages").add_argument("packages", nargs="+")
    sub.add_parser("unvote-all", help="Unvote all voted packages")
    sub.add_parser("check", help="Check for voted packages").add_argument("packages", nargs="+")
    sub.add_parser("list", help="List all voted packages")
    autovote = sub.add_parser("autovote", help="Vote/Unvote for installed packages")
    autovote.add_argument(
        "--no-verify",
        action="store_true",
        help="Do not check that installed packages exist on the AUR before voting.",
    )
    sub.add_parser("create-config", help="Create configuration file").add_argument("path")
    sub.add_parser("check-config", help="Check configuration file").add_argument("path")
    return parser


def setup_logging(verbose: int, log_dir: str | None = None):
    level = {0: "INFO", 1: "DEBUG"}.get(verbose, "TRACE")
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_dir:
        logger.add(f"{log_dir}/{{time}}.log", rotation="1 day", level="DEBUG")


def _print(lines: list[str]):
    for line in lines:
        print(line)


async def run_command(args: argparse.Namespace, conf: Config) -> int:
    client = AurClient(
        base_url=conf.aur_url,
        page_size=conf.page_size,
        timeout=conf.timeout,
        max_attempts=conf.max_attempts,
        backoff=conf.backoff,
    )
    verify_exists = conf.verify_exists and not getattr(args, "no_verify", False)
    reconciler = Reconciler(client, conf.credentials, conf.workers, verify_exists)

    try:
        match args.command:
            case "vote":
                outcomes = await reconciler.vote(args.packages)
                _print(display.format_outcomes(outcomes.values()))
                return EXIT_OK if all(o.ok for o in outcomes.values()) else EXIT_PARTIAL

            case "unvote":
                outcomes = await reconciler.unvote(args.packages)
                _print(display.format_outcomes(outcomes.values()))
                return EXIT_OK if all(o.ok for o in outcomes.values()) else EXIT_PARTIAL

            case "unvote-all":
                outcomes = await reconciler.unvote_all()
                _print(display.format_outcomes(outcomes.values()))
                return EXIT_OK if all(o.ok for o in outcomes.values()) else EXIT_PARTIAL

            case "check":
                states = await reconciler.check(args.packages)
                _print([display.format_vote_state(name, voted) for name, voted in states.items()])
                return EXIT_OK

            case "list":
                installed = await asyncio.to_thread(pacman.list_installed)
                records = await reconciler.list_voted()
                _print([display.format_voted(record, installed) for record in records])
                return EXIT_OK

            case "autovote":
                installed = await asyncio.to_thread(pacman.list_installed_non_official)
                report = await reconciler.run(installed)
                _print(display.format_report(report))
                return EXIT_OK if report.ok else EXIT_PARTIAL

        raise ThumbsupError(f"Unknown command: {args.command}")
    finally:
        await reconciler.close()


async def main(argv: list[str] | None = None) -> int:
    """Async entry point.

    Parses arguments, initializes configuration and logging, and runs the
    selected subcommand. Returns the process exit status.
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_dir)

    try:
        if args.command == "create-config":
            username = input("AUR user name: ")
            password = getpass.getpass("Password: ")
            create_config(args.path, username, password)
            return EXIT_OK

        if args.command == "check-config":
            Config().load(args.path)
            print(f"`{args.path}` file is valid and secure.")
            return EXIT_OK

        conf = Config().load(args.config)
        return await run_command(args, conf)
    except ThumbsupError as e:
        logger.error(e)
        return EXIT_ERROR


def main_sync():
    """Synchronous wrapper for the async main function."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    main_sync()

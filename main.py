"""CLI entry point for the job curation pipeline."""

import argparse
import asyncio
import json
import logging
import sqlite3
import sys

from jobcurator.browser.fetcher import BrowserContentFetcher
from jobcurator.browser.session import BrowserSession
from jobcurator.core.config import Settings
from jobcurator.core.db import SqliteStore, init_db, upsert_user
from jobcurator.core.schemas import SessionStatus, UserPreferences
from jobcurator.pipeline import admin
from jobcurator.pipeline.governor import Governor
from jobcurator.pipeline.orchestrator import ContentFetcher, Orchestrator
from jobcurator.pipeline.quality_metrics import QualityMetrics
from jobcurator.pipeline.scheduler import JobScheduler
from jobcurator.pipeline.session_manager import SessionManager
from jobcurator.sites.registry import SiteRegistry

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    parser = argparse.ArgumentParser(
        description="Job curation pipeline - scrape, clean, dedupe and score listings",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- run: one manual session ---
    run_parser = subparsers.add_parser("run", parents=[common], help="Run one manual session")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the fetches a session would make without launching a browser",
    )

    # --- serve: cron-driven scheduler ---
    subparsers.add_parser("serve", parents=[common], help="Run the scheduler until interrupted")

    # --- status / quality-report ---
    subparsers.add_parser("status", parents=[common], help="Show governor and scheduler status")
    report_parser = subparsers.add_parser(
        "quality-report", parents=[common], help="Print the extraction quality report",
    )
    report_parser.add_argument("--hours", type=float, default=24, help="Window in hours")
    report_parser.add_argument(
        "--export",
        choices=["json"],
        help="Dump raw quality samples instead of the text report",
    )

    # --- operator controls ---
    stop_parser = subparsers.add_parser(
        "emergency-stop", parents=[common], help="Engage the global kill switch",
    )
    stop_parser.add_argument("--reason", required=True, help="Why scraping is being stopped")
    resume_parser = subparsers.add_parser(
        "resume", parents=[common], help="Clear the global kill switch",
    )
    resume_parser.add_argument("--reason", required=True, help="Why scraping may resume")

    site_parser = subparsers.add_parser(
        "site", parents=[common], help="Enable or disable one site",
    )
    site_parser.add_argument("name", help="Site name (indeed, aarp, usajobs or a custom site)")
    toggle = site_parser.add_mutually_exclusive_group(required=True)
    toggle.add_argument("--enable", action="store_true")
    toggle.add_argument("--disable", action="store_true")
    site_parser.add_argument("--reason", default="", help="Recorded with the flag")

    # --- add-user ---
    user_parser = subparsers.add_parser(
        "add-user", parents=[common], help="Create or update a user and their preferences",
    )
    user_parser.add_argument("--user-id", required=True)
    user_parser.add_argument("--email", default="")
    user_parser.add_argument("--job-types", default="", help="Comma-separated, e.g. tech,quiet")
    user_parser.add_argument(
        "--locations", default="", help="Comma-separated: remote, closetohome, anywhere",
    )
    user_parser.add_argument(
        "--schedule", default="", help="'daily' for full-time, anything else part-time",
    )
    user_parser.add_argument("--city", default="")
    user_parser.add_argument("--state", default="")
    user_parser.add_argument("--keywords", default="", help="Comma-separated search keywords")
    user_parser.add_argument(
        "--no-notifications",
        action="store_true",
        help="Store the user but exclude them from sessions",
    )

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class Runtime:
    """The collaborators one process shares, wired from settings."""

    def __init__(self, settings: Settings, conn: sqlite3.Connection) -> None:
        self.settings = settings
        self.conn = conn
        self.metrics = QualityMetrics(conn)
        self.governor = Governor(settings.governor, self.metrics, conn)
        self.registry = SiteRegistry(settings.sites)
        self.store = SqliteStore(conn)
        self.sessions = SessionManager()

    def orchestrator(self, fetcher: ContentFetcher) -> Orchestrator:
        return Orchestrator(
            self.settings,
            self.governor,
            self.store,
            fetcher,
            metrics=self.metrics,
            registry=self.registry,
        )

    def scheduler(self, orchestrator: Orchestrator | None = None) -> JobScheduler:
        if orchestrator is None:
            async def run_session(session):
                msg = "no orchestrator attached"
                raise RuntimeError(msg)
        else:
            run_session = orchestrator.run_session
        return JobScheduler(
            self.settings.scheduler, self.sessions, self.governor, run_session, conn=self.conn,
        )

    def close(self) -> None:
        self.conn.close()


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def dry_run(runtime: Runtime) -> None:
    """Print the fetches a session would attempt."""
    auth = runtime.governor.authorize()
    if not auth.allowed:
        print(f"[DRY RUN] Session would be refused: {auth.reason}")
        return
    orchestrator = runtime.orchestrator(fetcher=_NoFetch())
    planned = orchestrator.plan()
    users = {user_id for user_id, _, _ in planned}
    print(f"[DRY RUN] {len(users)} eligible users, {len(planned)} fetches planned")
    for user_id, site, url in planned:
        print(f"[DRY RUN] {user_id} on {site}: {url}")


class _NoFetch:
    async def fetch(self, url: str):
        msg = "fetching is disabled in dry-run"
        raise RuntimeError(msg)


async def run(runtime: Runtime) -> int:
    """One manual session with a real browser. Returns a process exit code."""
    async with BrowserSession(runtime.settings.browser) as browser:
        fetcher = BrowserContentFetcher(browser, runtime.registry)
        scheduler = runtime.scheduler(runtime.orchestrator(fetcher))
        session = await admin.trigger_manual(scheduler)

    print(
        f"\nSession {session.id} {session.status.value}: {session.jobs_found} found, "
        f"{session.jobs_saved} saved, {session.jobs_duplicate} duplicates, "
        f"{session.jobs_invalid} invalid, {session.error_count} errors."
    )
    if session.reason:
        print(f"  Reason: {session.reason}")
    for site, count in sorted(session.site_counts.items()):
        print(f"  {site}: {count} saved")
    return 0 if session.status is SessionStatus.COMPLETED else 1


async def serve(runtime: Runtime) -> int:
    """Run the cron scheduler until interrupted."""
    async with BrowserSession(runtime.settings.browser) as browser:
        fetcher = BrowserContentFetcher(browser, runtime.registry)
        scheduler = runtime.scheduler(runtime.orchestrator(fetcher))
        if not scheduler.start():
            print(
                "Scheduler is disabled. Set scheduler.enabled in the config "
                "or JOB_SCHEDULER_ENABLED=true.",
                file=sys.stderr,
            )
            return 1
        next_run = scheduler.next_run_time()
        print(f"Scheduler running ({runtime.settings.scheduler.frequency}), next run: {next_run}")
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.stop()
    return 0


def cmd_add_user(runtime: Runtime, args: argparse.Namespace) -> None:
    preferences = UserPreferences(
        job_types=_split(args.job_types),
        locations=_split(args.locations),
        schedule_preference=args.schedule,
        city=args.city,
        state=args.state,
        keywords=_split(args.keywords),
    )
    upsert_user(
        runtime.conn,
        args.user_id,
        email=args.email,
        notifications_enabled=not args.no_notifications,
        preferences=preferences,
    )
    print(f"User {args.user_id} saved")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.load(args.config)
    except ValueError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    runtime = Runtime(settings, init_db(settings.database.path))
    code = 0
    try:
        if args.command == "run":
            if args.dry_run:
                dry_run(runtime)
            else:
                code = asyncio.run(run(runtime))
        elif args.command == "serve":
            try:
                code = asyncio.run(serve(runtime))
            except KeyboardInterrupt:
                print("Scheduler stopped")
        elif args.command == "status":
            status = admin.show_status(runtime.governor, runtime.scheduler(), runtime.conn)
            print(json.dumps(status, indent=2, default=str))
        elif args.command == "quality-report":
            if args.export == "json":
                print(runtime.metrics.export(args.hours))
            else:
                print(admin.quality_report(runtime.metrics, args.hours))
        elif args.command == "emergency-stop":
            admin.emergency_stop(runtime.governor, args.reason)
            print(f"Kill switch engaged: {args.reason}")
        elif args.command == "resume":
            admin.resume(runtime.governor, args.reason)
            print(f"Kill switch cleared: {args.reason}")
        elif args.command == "site":
            try:
                result = admin.set_site(runtime.governor, args.name, args.enable, args.reason)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                code = 1
            else:
                state = "enabled" if result["enabled"] else "disabled"
                print(f"Site {result['site']} {state}")
        elif args.command == "add-user":
            try:
                cmd_add_user(runtime, args)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                code = 1
    finally:
        runtime.close()

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()

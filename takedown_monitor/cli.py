"""
Command-line interface.

Usage:
    takedown-monitor init-db
    takedown-monitor run [--title T ...] [--keyword K ...] [--export PATH]
    takedown-monitor classify results.csv --session-id S
    takedown-monitor pending list|retry|recheck
    takedown-monitor pending approve|reject ID [ID ...] [--backfill]
    takedown-monitor sites list|add|remove|import ...
    takedown-monitor titles list|add|remove ...
    takedown-monitor deep SESSION [--min-urls N] [--scan-only]
    takedown-monitor tracking list SESSION | exclude URL [URL ...]
    takedown-monitor export SESSION PATH
"""

import argparse
import sys
from typing import Optional

import pandas as pd
from rich.console import Console
from rich.table import Table

from takedown_monitor import __version__
from takedown_monitor.config import config
from takedown_monitor.exceptions import ConfigurationError, MonitorError
from takedown_monitor.features.schema import ReviewAction, SearchResult, SiteType
from takedown_monitor.storage.database import Database, get_database
from takedown_monitor.storage.pending_queue import PendingReviewQueue
from takedown_monitor.storage.results import DetectionResultStore, ReportTrackingStore, SessionStore
from takedown_monitor.storage.site_registry import SiteRegistry
from takedown_monitor.storage.titles import TitleStore
from takedown_monitor.utils.domain_utils import load_domain_list, normalize_domain
from takedown_monitor.utils.logging_setup import setup_logging
from takedown_monitor.utils.rate_limiter import BatchDelay

console = Console()

STATUS_STYLES = {"illegal": "red", "legal": "green", "pending": "yellow"}


def _queue(db: Database) -> PendingReviewQueue:
    registry = SiteRegistry(db)
    return PendingReviewQueue(db, registry, ReportTrackingStore(db), DetectionResultStore(db))


def _print_counts(title: str, counts) -> None:
    table = Table(title=title)
    table.add_column("Total", justify="right")
    table.add_column("Illegal", justify="right", style="red")
    table.add_column("Legal", justify="right", style="green")
    table.add_column("Pending", justify="right", style="yellow")
    table.add_row(str(counts.total), str(counts.illegal), str(counts.legal), str(counts.pending))
    console.print(table)


def load_search_results(path: str) -> list[SearchResult]:
    """Read search results from a CSV or JSON file (``title`` and ``url`` required)."""
    df = pd.read_json(path) if path.lower().endswith(".json") else pd.read_csv(path)

    missing = {"title", "url"} - set(df.columns)
    if missing:
        raise ConfigurationError(f"{path}: missing columns {', '.join(sorted(missing))}")

    df = df.astype(object).where(pd.notna(df), None)
    results = []
    for index, row in enumerate(df.to_dict("records"), start=1):
        results.append(
            SearchResult(
                title=str(row["title"]),
                domain=row.get("domain") or normalize_domain(str(row["url"])),
                url=str(row["url"]),
                search_query=row.get("search_query") or str(row["title"]),
                page=int(row.get("page") or 1),
                rank=int(row.get("rank") or index),
                snippet=row.get("snippet"),
            )
        )
    return results


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def cmd_init_db(args, db: Database) -> int:
    db.create_all()
    console.print(f"[green]✓[/green] Database ready: {db}")
    return 0


def cmd_config(args, db: Database) -> int:
    config.print_status()
    return 0


def cmd_run(args, db: Database) -> int:
    from takedown_monitor.export import export_session
    from takedown_monitor.monitor import run_monitoring

    summary = run_monitoring(
        db=db,
        titles=args.title or None,
        keywords=args.keyword or None,
        session_id=args.session_id,
    )
    _print_counts(f"Session {summary.session_id} ({summary.searched} URLs searched)", summary.counts)

    if args.export:
        path = export_session(summary.results, args.export)
        console.print(f"[green]✓[/green] Exported to {path}")
    return 0


def cmd_classify(args, db: Database) -> int:
    from takedown_monitor.models.judgment_engine import JudgmentEngine
    from takedown_monitor.monitor import ResultClassifier

    if not config.LLM_API_KEY:
        raise ConfigurationError("LLM_API_KEY is not set")

    search_results = load_search_results(args.file)
    session_id = args.session_id or SessionStore.new_session_id()

    classifier = ResultClassifier.from_database(db, JudgmentEngine.from_config())
    classifier.sessions.create(session_id)
    try:
        classifier.run_classification(search_results, session_id)
    except Exception as e:
        classifier.sessions.fail(session_id, str(e))
        raise
    classifier.sessions.complete(session_id)

    _print_counts(f"Session {session_id}", classifier.results.counts(session_id))
    return 0


def cmd_pending_list(args, db: Database) -> int:
    items = _queue(db).list_retryable() if args.failed else _queue(db).list_pending()

    table = Table(title=f"Pending Review ({len(items)})")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Domain", style="bold")
    table.add_column("URLs", justify="right")
    table.add_column("Judgment")
    table.add_column("Failure")
    table.add_column("Reason", overflow="fold")

    for item in items:
        judgment = item.llm_judgment.value if item.llm_judgment else "-"
        failure = item.failure_kind.value if item.failure_kind.retryable else ""
        table.add_row(str(item.id), item.domain, str(len(item.urls)), judgment, failure, item.llm_reason or "")

    console.print(table)
    return 0


def cmd_pending_retry(args, db: Database) -> int:
    from takedown_monitor.models.judgment_engine import JudgmentEngine
    from takedown_monitor.monitor import reprocess_failed_judgments

    if not config.LLM_API_KEY:
        raise ConfigurationError("LLM_API_KEY is not set")

    summary = reprocess_failed_judgments(
        _queue(db), JudgmentEngine.from_config(), DetectionResultStore(db), batch_size=args.batch_size
    )
    console.print(
        f"Retried {summary.retried}: [green]{summary.recovered} judged[/green], "
        f"[yellow]{summary.still_failed} still failing[/yellow]"
    )
    return 0


def cmd_pending_resolve(args, db: Database) -> int:
    action = ReviewAction(args.pending_command)
    outcomes = _queue(db).bulk_resolve(args.ids, action, backfill=args.backfill)

    for outcome in outcomes:
        if outcome.success:
            console.print(
                f"[green]✓[/green] {outcome.item_id} {outcome.domain} → {action.site_type.value}"
                + (f" ({outcome.tracked_urls} URLs tracked)" if outcome.tracked_urls else "")
            )
        else:
            console.print(f"[red]✗[/red] {outcome.item_id}: {outcome.error}")

    return 0 if all(o.success for o in outcomes) else 1


def cmd_pending_recheck(args, db: Database) -> int:
    summary = _queue(db).recheck()
    console.print(
        f"[red]{summary.illegal} illegal[/red], [green]{summary.legal} legal[/green], "
        f"{summary.remaining} still pending ({summary.tracked_urls} URLs tracked)"
    )
    return 0


def cmd_sites_list(args, db: Database) -> int:
    site_type = SiteType(args.type) if args.type else None
    registry = SiteRegistry(db)

    for kind in [site_type] if site_type else list(SiteType):
        domains = registry.list_domains(kind)
        console.print(f"[bold]{kind.value}[/bold] ({len(domains)})")
        for domain in domains:
            console.print(f"  {domain}")
    return 0


def cmd_sites_add(args, db: Database) -> int:
    registry = SiteRegistry(db)
    for domain in args.domains:
        registered = registry.add(domain, SiteType(args.type), apex=args.apex)
        console.print(f"[green]✓[/green] {registered} → {args.type}")
    return 0


def cmd_sites_remove(args, db: Database) -> int:
    registry = SiteRegistry(db)
    site_type = SiteType(args.type) if args.type else None
    status = 0
    for domain in args.domains:
        if registry.remove(domain, site_type):
            console.print(f"[green]✓[/green] Removed {normalize_domain(domain)}")
        else:
            console.print(f"[yellow]–[/yellow] {normalize_domain(domain)} not registered")
            status = 1
    return status


def cmd_sites_import(args, db: Database) -> int:
    domains = load_domain_list(args.file)
    added = SiteRegistry(db).seed(domains, SiteType(args.type))
    console.print(f"[green]✓[/green] Imported {added} new {args.type} domains ({len(domains)} in file)")
    return 0


def cmd_titles_list(args, db: Database) -> int:
    titles = TitleStore(db).list_all()
    table = Table(title="Titles")
    table.add_column("Title")
    table.add_column("Monitored")
    for row in titles:
        table.add_row(row["name"], "✓" if row["is_current"] else "")
    console.print(table)
    return 0


def cmd_titles_add(args, db: Database) -> int:
    store = TitleStore(db)
    for name in args.names:
        state = "added" if store.add(name) else "already monitored"
        console.print(f"{name}: {state}")
    return 0


def cmd_titles_remove(args, db: Database) -> int:
    store = TitleStore(db)
    for name in args.names:
        state = "removed" if store.remove(name) else "not monitored"
        console.print(f"{name}: {state}")
    return 0


def cmd_deep(args, db: Database) -> int:
    from takedown_monitor.monitor import ResultClassifier, run_deep_monitoring, scan_deep_targets

    min_urls = args.min_urls or config.DEEP_MIN_URLS
    if SessionStore(db).get(args.session_id) is None:
        console.print(f"[yellow]Unknown session {args.session_id}[/yellow]")
        return 1

    targets = scan_deep_targets(DetectionResultStore(db), SiteRegistry(db), args.session_id, min_urls)

    table = Table(title=f"Deep Monitoring Targets ({len(targets)})")
    table.add_column("Title")
    table.add_column("Domain", style="red")
    table.add_column("URLs", justify="right")
    table.add_column("Query", overflow="fold")
    for target in targets:
        table.add_row(target.title, target.domain, str(target.url_count), target.deep_query)
    console.print(table)

    if args.scan_only or not targets:
        return 0

    missing = config.missing_credentials()
    if missing:
        raise ConfigurationError(f"Missing credentials: {', '.join(missing)}")

    from takedown_monitor.collectors.serper import SerperCollector
    from takedown_monitor.models.judgment_engine import JudgmentEngine

    classifier = ResultClassifier.from_database(db, JudgmentEngine.from_config())
    with SerperCollector() as collector:
        summary = run_deep_monitoring(
            classifier,
            collector,
            args.session_id,
            targets=targets,
            max_pages=config.SEARCH_MAX_PAGES,
            max_results=config.SEARCH_MAX_RESULTS,
            delay=BatchDelay(config.SEARCH_DELAY_MIN, config.SEARCH_DELAY_MAX),
        )

    for outcome in summary.targets:
        if outcome.error:
            console.print(f"[red]✗[/red] {outcome.target.domain}: {outcome.error}")
        else:
            console.print(
                f"[green]✓[/green] {outcome.target.domain}: {outcome.new_urls_count} new of {outcome.results_count} "
                f"([red]{outcome.illegal}[/red]/[green]{outcome.legal}[/green]/[yellow]{outcome.pending}[/yellow])"
            )
    _print_counts(f"Session {args.session_id} (+{summary.new_urls} URLs)", classifier.results.counts(args.session_id))
    return 0 if all(o.error is None for o in summary.targets) else 1


def cmd_tracking_list(args, db: Database) -> int:
    rows = ReportTrackingStore(db).by_session(args.session_id)

    table = Table(title=f"Report Tracking {args.session_id} ({len(rows)})")
    table.add_column("URL", overflow="fold")
    table.add_column("Domain", style="bold")
    table.add_column("Status")
    table.add_column("Reason")
    for row in rows:
        table.add_row(row["url"], row["domain"], row["report_status"], row["reason"] or "")
    console.print(table)
    return 0


def cmd_tracking_exclude(args, db: Database) -> int:
    store = ReportTrackingStore(db)
    for url in args.urls:
        state = "excluded" if store.exclude(url) else "already excluded"
        console.print(f"{url}: {state}")
    return 0


def cmd_export(args, db: Database) -> int:
    from takedown_monitor.export import export_session

    results = DetectionResultStore(db).by_session(args.session_id)
    if not results:
        console.print(f"[yellow]No results for session {args.session_id}[/yellow]")
        return 1

    path = export_session(results, args.path)
    console.print(f"[green]✓[/green] Exported {len(results)} results to {path}")
    return 0


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="takedown-monitor",
        description="Find, classify and track pirated copies of monitored titles",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = commands.add_parser("config", help="Show configuration status")
    p.set_defaults(func=cmd_config)

    p = commands.add_parser("run", help="Run a full monitoring session")
    p.add_argument("--title", action="append", help="Title to search (default: monitored titles)")
    p.add_argument("--keyword", action="append", help="Query keyword (default: SEARCH_KEYWORDS)")
    p.add_argument("--session-id", help="Session id (default: current timestamp)")
    p.add_argument("--export", metavar="PATH", help="Also write results to .xlsx or .csv")
    p.set_defaults(func=cmd_run)

    p = commands.add_parser("classify", help="Classify search results from a CSV/JSON file")
    p.add_argument("file", help="File with title,url[,domain,search_query,page,rank,snippet]")
    p.add_argument("--session-id", help="Session id (default: current timestamp)")
    p.set_defaults(func=cmd_classify)

    pending = commands.add_parser("pending", help="Pending review queue")
    pending_commands = pending.add_subparsers(dest="pending_command", required=True)

    p = pending_commands.add_parser("list", help="List pending domains")
    p.add_argument("--failed", action="store_true", help="Only technical judgment failures")
    p.set_defaults(func=cmd_pending_list)

    p = pending_commands.add_parser("retry", help="Re-judge technical judgment failures")
    p.add_argument("--batch-size", type=int, help="Domains per oracle call")
    p.set_defaults(func=cmd_pending_retry)

    for action, help_text in (("approve", "Register as illegal"), ("reject", "Register as legal")):
        p = pending_commands.add_parser(action, help=help_text)
        p.add_argument("ids", nargs="+", type=int, help="Pending item ids")
        p.add_argument("--backfill", action="store_true", help="Also update stored pending results")
        p.set_defaults(func=cmd_pending_resolve)

    p = pending_commands.add_parser("recheck", help="Auto-resolve items now covered by the registry")
    p.set_defaults(func=cmd_pending_recheck)

    sites = commands.add_parser("sites", help="Site Registry")
    sites_commands = sites.add_subparsers(dest="sites_command", required=True)
    site_types = [t.value for t in SiteType]

    p = sites_commands.add_parser("list", help="List registered domains")
    p.add_argument("--type", choices=site_types)
    p.set_defaults(func=cmd_sites_list)

    p = sites_commands.add_parser("add", help="Register domains")
    p.add_argument("domains", nargs="+")
    p.add_argument("--type", choices=site_types, required=True)
    p.add_argument("--apex", action="store_true", help="Register the apex domain")
    p.set_defaults(func=cmd_sites_add)

    p = sites_commands.add_parser("remove", help="Unregister domains")
    p.add_argument("domains", nargs="+")
    p.add_argument("--type", choices=site_types)
    p.set_defaults(func=cmd_sites_remove)

    p = sites_commands.add_parser("import", help="Import a domain list file")
    p.add_argument("file")
    p.add_argument("--type", choices=site_types, required=True)
    p.set_defaults(func=cmd_sites_import)

    titles = commands.add_parser("titles", help="Monitored titles")
    titles_commands = titles.add_subparsers(dest="titles_command", required=True)

    p = titles_commands.add_parser("list", help="List titles")
    p.set_defaults(func=cmd_titles_list)

    p = titles_commands.add_parser("add", help="Start monitoring titles")
    p.add_argument("names", nargs="+")
    p.set_defaults(func=cmd_titles_add)

    p = titles_commands.add_parser("remove", help="Stop monitoring titles")
    p.add_argument("names", nargs="+")
    p.set_defaults(func=cmd_titles_remove)

    p = commands.add_parser("deep", help="Site-scoped follow-up searches for a session")
    p.add_argument("session_id")
    p.add_argument("--min-urls", type=int, help="Distinct URLs a domain needs (default: DEEP_MIN_URLS)")
    p.add_argument("--scan-only", action="store_true", help="List targets without searching")
    p.set_defaults(func=cmd_deep)

    tracking = commands.add_parser("tracking", help="Report tracking")
    tracking_commands = tracking.add_subparsers(dest="tracking_command", required=True)

    p = tracking_commands.add_parser("list", help="List tracked URLs of a session")
    p.add_argument("session_id")
    p.set_defaults(func=cmd_tracking_list)

    p = tracking_commands.add_parser("exclude", help="Track URLs as main pages, not takedown targets")
    p.add_argument("urls", nargs="+")
    p.set_defaults(func=cmd_tracking_exclude)

    p = commands.add_parser("export", help="Export a session's results")
    p.add_argument("session_id")
    p.add_argument("path", help=".xlsx or .csv")
    p.set_defaults(func=cmd_export)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    db = Database(args.database_url) if args.database_url else get_database()
    if args.command != "init-db":
        db.create_all()

    try:
        return args.func(args, db)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 2
    except (MonitorError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1
    finally:
        db.dispose()


if __name__ == "__main__":
    sys.exit(main())

import argparse

from . import __version__
from .admission import AdmissionController
from .cache import JobCache
from .config import Settings, load_env
from .database import init_database, make_session_factory
from .errors import GhostJobError
from .logger import get_logger
from .orchestrator import GhostJobAnalyzer
from .snapshots import SnapshotEngine
from .sources import SourceRegistry


def _session_factory(settings: Settings):
    engine = init_database(settings.db_path)
    return make_session_factory(engine)


def cmd_init_db(args: argparse.Namespace) -> None:
    settings = Settings()
    init_database(settings.db_path)
    print(f"Database ready: {settings.db_path}")


def cmd_analyze(args: argparse.Namespace) -> None:
    settings = Settings()
    analyzer = GhostJobAnalyzer.from_settings(settings, _session_factory(settings))
    try:
        result = analyzer.analyze(args.url, args.user)
    except GhostJobError as e:
        raise SystemExit(e.message)

    print(f"Job: {result.job_id}")
    print(f"  Title: {result.title}")
    print(f"  Company: {result.company}")
    print(f"  Score: {result.score:.3f} ({result.tier} ghost risk)")
    print(f"  Cached: {'yes' if result.cache_hit else 'no'}")
    print("  Breakdown:")
    for name, value in result.breakdown.present().items():
        print(f"    {name}: {value:.2f}")
    if result.red_flags:
        print(f"  Red flags: {', '.join(result.red_flags)}")
    print("  Recommendations:")
    for rec in result.recommendations:
        print(f"   - {rec}")
    if result.tokens_remaining is not None:
        print(f"Requests remaining: {result.tokens_remaining}")


def cmd_snapshots(args: argparse.Namespace) -> None:
    settings = Settings()
    session_factory = _session_factory(settings)
    key = SourceRegistry.default(timeout=settings.request_timeout).composite_key(args.url)
    if key is None:
        raise SystemExit("Snapshots are only kept for postings from supported job boards (Greenhouse).")

    record = JobCache(session_factory).lookup(key)
    if record is None:
        print(f"No stored job for {key}")
        return

    snapshots = SnapshotEngine(session_factory, threshold=settings.simhash_threshold).all_snapshots(record.id)
    print(f"Job {record.id}: {record.title} ({len(snapshots)} snapshots)")
    for s in snapshots:
        print(f"  {s.taken_at:%Y-%m-%d %H:%M:%S}  source_updated_at={s.source_updated_at}  content={s.content_hash[:12]}")


def cmd_tokens(args: argparse.Namespace) -> None:
    settings = Settings()
    admission = AdmissionController(
        _session_factory(settings),
        initial_tokens=settings.initial_tokens,
        atomic=settings.atomic_admission,
    )
    if args.grant is not None:
        try:
            total = admission.grant_tokens(args.user, args.grant)
        except ValueError as e:
            raise SystemExit(str(e))
        print(f"Granted {args.grant} tokens to {args.user}; now {total}")
        return
    lock = admission.get_lock(args.user)
    state = "available" if lock.is_available else "busy"
    print(f"{args.user}: {lock.tokens_remaining} tokens remaining ({state})")


def main():
    # Load .env if present (GHOSTJOBS_DB_PATH, GHOSTJOBS_LOG_LEVEL, etc.)
    load_env()
    get_logger().set_level(Settings().log_level)

    parser = argparse.ArgumentParser(prog="ghostjobs", description="Ghost job detection CLI")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the database tables")
    ini.set_defaults(func=cmd_init_db)

    ana = subparsers.add_parser("analyze", help="Score a job posting URL for ghost-job risk")
    ana.add_argument("--url", required=True, help="Job posting URL (Greenhouse boards are tracked over time)")
    ana.add_argument("--user", required=True, help="User id the request is charged to")
    ana.set_defaults(func=cmd_analyze)

    snp = subparsers.add_parser("snapshots", help="List stored snapshots of a tracked posting")
    snp.add_argument("--url", required=True, help="Job posting URL")
    snp.set_defaults(func=cmd_snapshots)

    tok = subparsers.add_parser("tokens", help="Show or grant a user's remaining analysis requests")
    tok.add_argument("--user", required=True, help="User id")
    tok.add_argument("--grant", type=int, help="Add this many tokens")
    tok.set_defaults(func=cmd_tokens)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()

import argparse
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from . import config
from .config import AppConfig, load_config, save_config
from .core import ReviewSession
from .database.db import StateDB
from .exceptions import MediaTriageError
from .reporting import RejectedReport
from .scanning.backends import LocalFilesystemBackend, ScopedDirectoryBackend

def setup_logging(data_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the data directory."""
    log_level = logging.DEBUG if verbose else logging.INFO

    data_dir.mkdir(parents=True, exist_ok=True)
    log_file = data_dir / config.LOG_FILE

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Media Triage: review files one at a time, keep or reject")

    p.add_argument("--data-dir", type=Path, default=config.APP_DATA_DIR, help="Where config, state and logs live")
    p.add_argument("--config", type=Path, default=None, help="Custom config file (default: data-dir/config.json)")
    p.add_argument("--db", type=Path, default=None, help="Custom path for SQLite DB (default: data-dir/state.db)")
    p.add_argument("--scope", type=Path, default=None,
                   help="Work inside this directory only; scan paths and deleted folder become relative to it")
    p.add_argument("--max-depth", type=int, default=None, help="Limit scan recursion depth")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("scan", help="Scan configured paths and register new files")

    review = sub.add_parser("review", help="Interactive keep/reject loop")
    review.add_argument("--resume", action="store_true", help="Continue the saved queue without rescanning")

    sub.add_parser("stats", help="Show review progress")
    sub.add_parser("rejected", help="List quarantined files")

    restore = sub.add_parser("restore", help="Move a quarantined file back")
    restore.add_argument("original", help="Original path of the file")
    restore.add_argument("deleted", help="Current path inside the deleted folder")

    purge = sub.add_parser("purge", help="Permanently delete a quarantined file")
    purge.add_argument("deleted", help="Path inside the deleted folder")
    purge.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    export = sub.add_parser("export", help="Write the rejected-file list to CSV")
    export.add_argument("csv", type=Path, help="Output CSV path")

    cfg = sub.add_parser("config", help="Show or edit settings")
    cfg.add_argument("--add-path", action="append", default=[], help="Add a scan path")
    cfg.add_argument("--remove-path", action="append", default=[], help="Remove a scan path")
    cfg.add_argument("--deleted-folder", default=None, help="Set the quarantine folder")
    cfg.add_argument("--min-size", type=int, default=None, help="Minimum file size in bytes")
    cfg.add_argument("--max-size", type=int, default=None, help="Maximum file size in bytes (0 = no limit)")

    return p.parse_args(argv)

def print_stats(session: ReviewSession):
    s = session.get_stats()
    print(f"Total: {s.total}  Pending: {s.pending}  Kept: {s.kept}  Rejected: {s.rejected}  Reviewed: {s.reviewed}")

def run_review(session: ReviewSession, cfg: AppConfig, resume: bool) -> int:
    if resume and session.resume():
        logging.info(f"Resuming saved queue ({session.remaining()} files)")
    else:
        summary = session.initialize_scan(progress=True)
        if not summary.success:
            logging.error(f"Scan failed: {summary.error}")
            return 1

    with tqdm(total=session.remaining(), desc="Reviewed", unit="file") as bar:
        while True:
            item = session.get_next_file()
            if item is None:
                tqdm.write("Nothing left to review.")
                break

            tqdm.write(f"\n{item.filepath}")
            if cfg.ui.show_metadata:
                for key, value in session.describe(item).items():
                    tqdm.write(f"  {key:<11} {value}")

            choice = input("[k]eep  [r]eject  [s]kip  [q]uit > ").strip().lower()
            if choice in ("q", "quit"):
                break
            if choice in ("k", "keep"):
                result = session.keep(item.filepath)
            elif choice in ("r", "reject"):
                result = session.reject(item.filepath)
            elif choice in ("s", "skip"):
                session.skip(item.filepath)
                bar.update(1)
                continue
            else:
                tqdm.write("Unknown choice.")
                continue

            if not result.success:
                tqdm.write(f"Failed ({result.error.value}): {result.message}")
                continue
            bar.update(1)

    print_stats(session)
    return 0

def run_config(args, cfg: AppConfig, cfg_path: Path) -> int:
    changed = False
    for path in args.add_path:
        if path not in cfg.scan_paths:
            cfg.scan_paths.append(path)
            changed = True
    for path in args.remove_path:
        if path in cfg.scan_paths:
            cfg.scan_paths.remove(path)
            changed = True
    if args.deleted_folder is not None:
        cfg.deleted_folder = args.deleted_folder
        changed = True
    if args.min_size is not None:
        cfg.min_size = args.min_size
        changed = True
    if args.max_size is not None:
        cfg.max_size = args.max_size or None
        changed = True

    if changed:
        save_config(cfg_path, cfg)
        logging.info(f"Saved config to {cfg_path}")
    print(json.dumps(cfg.to_dict(), indent=2))
    return 0

def dispatch(args, cfg: AppConfig, cfg_path: Path, session: ReviewSession) -> int:
    if args.command == "scan":
        summary = session.initialize_scan(progress=True)
        if not summary.success:
            logging.error(f"Scan failed: {summary.error}")
            return 1
        print(f"{summary.count} files queued for review.")
        print_stats(session)
        return 0

    if args.command == "review":
        return run_review(session, cfg, args.resume)

    if args.command == "stats":
        print_stats(session)
        return 0

    if args.command == "rejected":
        records = session.get_rejected_files()
        if not records:
            print("No rejected files.")
        for rec in records:
            print(f"[{rec.id}] {rec.rejected_at}  {rec.original_path} -> {rec.deleted_path}")
        return 0

    if args.command == "restore":
        result = session.restore(args.original, args.deleted)
        if not result.success:
            logging.error(f"Restore failed ({result.error.value}): {result.message}")
            return 1
        print(f"Restored to {result.path}")
        return 0

    if args.command == "purge":
        if not args.yes:
            answer = input(f"Permanently delete {args.deleted}? This cannot be undone. [y/N] ")
            if answer.strip().lower() not in ("y", "yes"):
                print("Cancelled.")
                return 0
        result = session.permanently_delete(args.deleted)
        if not result.success:
            logging.error(f"Delete failed ({result.error.value}): {result.message}")
            return 1
        print(f"Deleted {args.deleted}")
        return 0

    if args.command == "export":
        count = RejectedReport(session.store, session.backend).generate(args.csv)
        print(f"Wrote {count} records to {args.csv}")
        return 0

    if args.command == "config":
        return run_config(args, cfg, cfg_path)

    raise ValueError(f"Unknown command {args.command}")

def main(argv=None):
    args = parse_args(argv)

    data_dir = args.data_dir.expanduser().resolve()
    setup_logging(data_dir, args.verbose)

    cfg_path = args.config if args.config else data_dir / config.CONFIG_FILE
    db_path = args.db if args.db else data_dir / config.DATABASE_FILE

    try:
        cfg = load_config(cfg_path)
    except MediaTriageError as e:
        logging.error(str(e))
        sys.exit(1)

    if args.scope:
        backend = ScopedDirectoryBackend(args.scope)
        logging.info(f"Scoped to {backend.granted_dir}")
    else:
        backend = LocalFilesystemBackend()

    try:
        with StateDB(db_path) as store:
            session = ReviewSession.from_config(store, cfg, backend=backend, max_depth=args.max_depth)
            code = dispatch(args, cfg, cfg_path, session)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error.")
        sys.exit(1)

    sys.exit(code)

if __name__ == "__main__":
    main()

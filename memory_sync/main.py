import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import Settings
from .core import MemorySyncApp
from .exceptions import BatchCancelled, ConfigurationError, DriveAuthError


def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the destination."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "memory_sync.log"

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
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Memory Sync: import, download, back up and upload personal media")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--db", type=Path, default=None, help="Custom path for SQLite DB (default: dest/memory_catalog.db)")
    p.add_argument("--dest", type=Path, default=None, help="Library root (overrides MEMORY_SYNC_DESTINATION)")

    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import-local", help="Import media from a local directory")
    imp.add_argument("src", type=Path, help="Source directory to scan")
    imp.add_argument("--move", action="store_true", help="Move files instead of Copying")

    sub.add_parser("download", help="Download new media from the configured drive folder")

    bak = sub.add_parser("backup", help="Mirror the library onto an external drive")
    bak.add_argument("local_root", type=Path, help="Library root to mirror")
    bak.add_argument("external_root", type=Path, help="Root directory on the external drive")

    up = sub.add_parser("upload", help="Upload locally captured media over the trusted network")
    up.add_argument("src", type=Path, help="Local capture directory")
    up.add_argument("--manual", action="store_true", help="Run even when automatic upload is disabled")
    up.add_argument("--hash", action="append", dest="hashes", default=None,
                    help="Only upload files with this content hash (repeatable)")

    com = sub.add_parser("import-comments", help="Attach comments from a shared-album text export")
    com.add_argument("--file", type=Path, default=None, help="Export file to read (default: stdin)")
    com.add_argument("--add-commenters", action="store_true",
                     help="Register commenters that are not in the catalog yet")

    rm = sub.add_parser("delete-remote", help="Trash drive copies of a file by content hash")
    rm.add_argument("file_hash", help="SHA-256 of the file content")

    return p.parse_args(argv)


def read_comment_lines(path=None):
    """Lines of a comment export, from `path` or stdin."""
    if path is None:
        logging.info("Reading comment export from stdin...")
        return sys.stdin.read().splitlines()
    if not path.exists():
        raise ConfigurationError(f"Comment export not found: {path}")
    return path.read_text(encoding="utf-8-sig").splitlines()


def build_settings(args) -> Settings:
    settings = Settings.from_env()
    if args.dest:
        settings.destination_root = args.dest.resolve()
    if args.db:
        settings.db_path = args.db
    return settings


def main(argv=None):
    load_dotenv()
    args = parse_args(argv)

    # 1. Config (fail fast before any item is touched)
    try:
        settings = build_settings(args)
        if args.command in ("import-local", "download"):
            settings.require("destination_root")
        if args.command == "download":
            settings.require("credentials_file", "drive_folder_id")
        if args.command == "upload":
            settings.require("credentials_file", "upload_folder_id")
        if args.command == "delete-remote":
            settings.require("credentials_file")
        db_path = settings.resolved_db_path()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    log_dir = settings.destination_root or db_path.parent
    setup_logging(log_dir, args.verbose)
    logging.info(f"=== Memory Sync Started ({args.command}) ===")
    logging.info(f"Catalog: {db_path}")

    # 2. Execution
    app = MemorySyncApp(settings)
    try:
        if args.command == "import-local":
            app.import_local(args.src.resolve(), move=args.move)
        elif args.command == "download":
            app.download()
        elif args.command == "backup":
            app.backup(args.local_root.resolve(), args.external_root.resolve())
        elif args.command == "upload":
            app.upload(args.src.resolve(), manual=args.manual, target_hashes=args.hashes)
        elif args.command == "import-comments":
            app.import_comments(read_comment_lines(args.file), register_commenters=args.add_commenters)
        else:
            app.delete_remote(args.file_hash)
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)
    except DriveAuthError as e:
        logging.error(f"Google Drive authorization failed: {e}")
        sys.exit(1)
    except (KeyboardInterrupt, BatchCancelled):
        app.cancel_token.cancel()
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error during run.")
        sys.exit(1)
    finally:
        app.close()


if __name__ == "__main__":
    main()

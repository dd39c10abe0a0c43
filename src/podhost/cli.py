"""
Command-line interface for the podcast host.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

import requests

from .app import create_app
from .client import PodhostClient, expand_file_patterns
from .config import Settings
from .factory import create_services, start_background_sync
from .models import parse_iso_datetime


def format_bytes(num_bytes: float) -> str:
    """Human-readable byte count."""
    for unit in ("B", "KB", "MB", "GB"):
        if num_bytes < 1024:
            return f"{num_bytes:.1f} {unit}" if unit != "B" else f"{int(num_bytes)} B"
        num_bytes /= 1024
    return f"{num_bytes:.1f} TB"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="podhost",
        description="Self-hosted podcast feeds: run the server or manage episodes",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("PODHOST_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or $PODHOST_LOG_LEVEL)",
    )
    parser.add_argument(
        "--server",
        default=os.getenv("PODHOST_SERVER_URL", "http://localhost:8080"),
        help="Server URL for management commands (default: $PODHOST_SERVER_URL)",
    )
    parser.add_argument(
        "--api-key",
        default=os.getenv("PODHOST_API_KEY"),
        help="API key for management commands (default: $PODHOST_API_KEY)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the HTTP server")

    push = subparsers.add_parser("push", help="Upload audio files as episodes")
    push.add_argument(
        "files", nargs="+",
        help="Files, glob patterns or comma-separated lists",
    )
    push.add_argument("--feed", help="Target feed (default: server default feed)")
    push.add_argument("-t", "--title", help="Episode title")
    push.add_argument("-d", "--description", help="Episode description")
    push.add_argument(
        "-p", "--published-date",
        help="Publish date in ISO 8601 (e.g. 2024-01-15T10:30:00Z)",
    )
    push.add_argument(
        "-x", "--extract-date-from-file",
        action="store_true",
        help="Use the date tagged in the audio file",
    )
    push.add_argument(
        "--no-progress", action="store_true", help="Disable progress bars"
    )

    list_cmd = subparsers.add_parser("list", help="List episodes")
    list_cmd.add_argument("--feed", help="Feed to list (default: server default feed)")

    delete = subparsers.add_parser("delete", help="Delete an episode")
    delete.add_argument("episode_id", help="Episode identifier")
    delete.add_argument("--feed", help="Feed holding the episode")

    return parser


def run_server() -> None:
    """Load settings, build services and serve until interrupted."""
    settings = Settings.from_env()
    print(f"Using {settings.storage_backend} storage")
    services = create_services(settings)
    worker = start_background_sync(services)
    try:
        create_app(services).run(
            host=settings.host, port=settings.port, threaded=True
        )
    finally:
        worker.stop(timeout=5)
        services.index.metadata_reader.close()


def push(client: PodhostClient, args: argparse.Namespace) -> int:
    """Upload files; returns the process exit code."""
    files = expand_file_patterns(args.files)
    if not files:
        print("Error: No files found matching the pattern(s)", file=sys.stderr)
        return 1

    published_date = None
    if args.published_date:
        try:
            published_date = parse_iso_datetime(args.published_date)
        except ValueError:
            print(
                f"Error: Invalid date format: {args.published_date}",
                file=sys.stderr,
            )
            return 1

    if args.title and len(files) > 1:
        print("Warning: --title is applied to every file")

    print(f"Found {len(files)} file(s) to upload")
    for i, path in enumerate(files, 1):
        print(f"  {i}. {os.path.basename(path)} ({format_bytes(os.path.getsize(path))})")

    summary = client.upload_episodes(
        files,
        feed_id=args.feed,
        title=args.title,
        description=args.description,
        published_date=published_date,
        use_metadata=True if args.extract_date_from_file else None,
        show_progress=not args.no_progress,
    )

    for result in summary.results:
        name = os.path.basename(result.file_path)
        if result.success and result.episode:
            print(f"  Uploaded {name} -> {result.episode.get('id')}")
        else:
            print(f"  Failed {name}: {result.error}", file=sys.stderr)

    print("\nUpload complete:")
    print(f"  Successfully uploaded: {summary.successful}")
    print(f"  Failed uploads: {summary.failed}")
    return 1 if summary.failed else 0


def list_episodes(client: PodhostClient, args: argparse.Namespace) -> int:
    """Print the episodes of a feed."""
    episodes = client.list_episodes(args.feed)
    if not episodes:
        print("No episodes found")
        return 0
    print(f"Found {len(episodes)} episode(s):")
    for episode in episodes:
        print(
            f"  {episode['id']}  {episode.get('published_date', '')[:10]}  "
            f"{episode['title']} ({format_bytes(episode.get('file_size', 0))})"
        )
    return 0


def delete_episode(client: PodhostClient, args: argparse.Namespace) -> int:
    """Delete one episode."""
    if client.delete_episode(args.episode_id, args.feed):
        print(f"Deleted episode {args.episode_id}")
        return 0
    print(f"Episode not found: {args.episode_id}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "serve":
            run_server()
            return

        client = PodhostClient(args.server, args.api_key)
        handlers = {
            "push": push,
            "list": list_episodes,
            "delete": delete_episode,
        }
        exit_code = handlers[args.command](client, args)
        if exit_code:
            sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "?"
        if status == 401:
            print("Error: Unauthorized. Check PODHOST_API_KEY.", file=sys.stderr)
        else:
            print(f"Error: Server returned {status}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:  # pylint: disable=broad-except
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

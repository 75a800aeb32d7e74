"""CLI entrypoint for secret-sync."""
import sys
import argparse
import logging
from pathlib import Path

from .validators import validate_jobs, validate_secret_name
from .output import render_error_json, render_human, render_json
from ..sync.domains.codecs import codec_for_path
from ..sync.domains.config_loader import default_manifest, discover_config_path, load_manifest
from ..sync.domains.errors import ConfigError, ConfigNotFound
from ..sync.domains.models import FileEntry, Manifest
from ..sync.domains.provider import build_provider
from ..sync.workflows.sync_operations import PULL, PUSH, sync_entries

VERSION = "0.1.0"

# Configure logging to stderr so stdout only carries results
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _load_manifest(args) -> Manifest:
    """Load the manifest from --config or by searching parent directories."""
    config_path = Path(args.config) if args.config else discover_config_path()
    return load_manifest(config_path, project_id=args.project_id)


def _load_optional_manifest(args) -> Manifest:
    """Like _load_manifest, but fall back to defaults when no manifest exists."""
    if args.config:
        return load_manifest(Path(args.config), project_id=args.project_id)
    try:
        return load_manifest(discover_config_path(), project_id=args.project_id)
    except ConfigNotFound:
        logger.debug("No manifest found, using default provider settings")
        return default_manifest(project_id=args.project_id)


def _print_report(report, output_format: str) -> None:
    if output_format == "json":
        print(render_json(report))
    else:
        print(render_human(report))


def _run(operation: str, args, manifest: Manifest, entries) -> None:
    provider = build_provider(manifest.provider_config)
    report = sync_entries(
        operation,
        provider,
        entries,
        dry_run=args.dry_run,
        max_workers=getattr(args, "jobs", 1),
    )
    _print_report(report, args.format)
    sys.exit(1 if report.failed else 0)


def _run_declared(operation: str, args) -> None:
    validate_jobs(args.jobs)
    manifest = _load_manifest(args)

    entries = manifest.select(args.file, args.glob)
    if not entries and manifest.entries:
        raise ConfigError(f"No files matching filter within \"{manifest.path}\"")

    _run(operation, args, manifest, entries)


def _run_quick(operation: str, args) -> None:
    validate_secret_name(args.secret)
    manifest = _load_optional_manifest(args)

    path = Path(args.path).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path

    entry = FileEntry(key=args.secret, path=path, secret_name=args.secret, codec=codec_for_path(path))
    _run(operation, args, manifest, [entry])


def cmd_pull(args):
    """Pull declared secrets into their local files."""
    _run_declared(PULL, args)


def cmd_push(args):
    """Push declared local files to their secrets."""
    _run_declared(PUSH, args)


def cmd_quick_pull(args):
    """Pull one secret into a file without declaring it in a manifest."""
    _run_quick(PULL, args)


def cmd_quick_push(args):
    """Push one file to a secret without declaring it in a manifest."""
    _run_quick(PUSH, args)


def cmd_version(args):
    """Show version information."""
    print(f"secret-sync {VERSION}")


def _add_filter_arguments(parser):
    parser.add_argument(
        "--file",
        action="append",
        metavar="KEY",
        help="Only process the entry with this key (repeatable)"
    )
    parser.add_argument(
        "--glob",
        action="append",
        metavar="PATTERN",
        help="Only process entries whose key matches this shell pattern (repeatable)"
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        help="Number of entries to process concurrently (default: 1)"
    )


def _add_quick_arguments(parser):
    parser.add_argument(
        "-p", "--path",
        required=True,
        help="Local file path (relative to the current directory)"
    )
    parser.add_argument(
        "-s", "--secret",
        required=True,
        help="Name of the secret (format: [a-zA-Z0-9_-]+)"
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="secret-sync",
        description="Synchronize local secret files (.env and friends) with GCP Secret Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success (every file created, updated or unchanged)
  1 - Runtime error or at least one file failed
  2 - Usage error (invalid arguments, invalid secret name format, etc.)

Environment variables:
  GCP_PROJECT - GCP project ID (overrides the manifest)

Configuration:
  secret-sync.toml (or .json/.yaml/.yml) is searched for in the current
  directory and each parent directory. Use --config to point at one directly.
        """
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to the manifest (default: nearest secret-sync.toml/.json/.yaml/.yml)"
    )
    parser.add_argument(
        "-f", "--format",
        choices=["human", "json"],
        default="human",
        help="Output format (default: human)"
    )
    parser.add_argument(
        "--project-id",
        help="GCP project ID (overrides GCP_PROJECT and the manifest)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log progress to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of secret-sync"
    )

    for name, help_text, description in (
        ("pull", "Pull secrets into local files",
         "Fetch each declared secret and write it to its local file.\n"
         "Files whose content already matches are left untouched."),
        ("push", "Push local files to secrets",
         "Read each declared file and store it in its secret.\n"
         "Secrets are created on first push (with metadata) and updated afterwards."),
    ):
        command_parser = subparsers.add_parser(
            name,
            help=help_text,
            description=description,
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        _add_filter_arguments(command_parser)
        command_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would change without writing anything"
        )

    for name, help_text in (
        ("quick-pull", "Pull one secret into a file without a manifest entry"),
        ("quick-push", "Push one file to a secret without a manifest entry"),
    ):
        quick_parser = subparsers.add_parser(
            name,
            help=help_text,
            description=f"{help_text}.\n\nA manifest is not required but its provider settings are used when found.",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        _add_quick_arguments(quick_parser)
        quick_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would change without writing anything"
        )

    return parser


_COMMANDS = {
    "version": cmd_version,
    "pull": cmd_pull,
    "push": cmd_push,
    "quick-pull": cmd_quick_pull,
    "quick-push": cmd_quick_push,
}


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors or failed files (authentication, network, bad file content, etc.)
        2 - Usage errors (invalid arguments, invalid secret name format, etc.)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    if args.verbose:
        logging.getLogger("secret_sync").setLevel(logging.DEBUG)

    try:
        _COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        if args.format == "json":
            print(render_error_json(str(e)))
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

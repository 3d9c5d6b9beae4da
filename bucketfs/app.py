from __future__ import annotations

import argparse
import logging
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .backends import BackendTable, default_backends
from .config import RemoteConfig, default_config_path, load_remotes, parse_remote
from .errors import BucketFsError, ConfigError
from .interfaces import Copier, Fs
from .stats import Stats

logger = logging.getLogger(__name__)

LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def format_size(size: int) -> str:
    if size < 0:
        return "-"
    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} PB"


def format_time(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _configure_logging(verbosity: int) -> None:
    level = LOG_LEVELS[min(max(verbosity, 0), len(LOG_LEVELS) - 1)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_fs(
    remote: str,
    config_path: Optional[Path],
    stats: Stats,
    backends: Optional[BackendTable] = None,
) -> Fs:
    name, path = parse_remote(remote)
    remotes = load_remotes(config_path)
    config: Optional[RemoteConfig] = remotes.get(name)
    if config is None:
        raise ConfigError(
            f"Remote {name!r} not found in {config_path or default_config_path()}"
        )
    backends = backends or default_backends()
    return backends.new_fs(name, path, config, stats)


def _split_object_path(remote: str) -> tuple[str, str]:
    """``name:bucket/dir/file`` -> (``name:bucket/dir``, ``file``)."""
    name, path = parse_remote(remote)
    parent, _, leaf = path.strip("/").rpartition("/")
    if not parent or not leaf:
        raise ConfigError(f"Expected REMOTE:BUCKET/PATH, got {remote!r}")
    return f"{name}:{parent}", leaf


def _run_ls(fs: Fs, console: Console) -> int:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Path")
    with fs.list() as stream:
        for obj in stream:
            table.add_row(
                format_size(obj.size),
                format_time(getattr(obj, "last_modified", None)),
                obj.remote,
            )
        status = stream.status
    console.print(table)
    if status.truncated:
        console.print(
            f"[yellow]Listing incomplete: {status.error or 'cancelled'}[/yellow]"
        )
        return 1
    return 0


def _run_lsd(fs: Fs, console: Console) -> int:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    table.add_column("Name")
    with fs.list_dir() as stream:
        for entry in stream:
            table.add_row(format_size(entry.bytes), format_time(entry.when), entry.name)
        status = stream.status
    console.print(table)
    if status.truncated:
        console.print(
            f"[yellow]Listing incomplete: {status.error or 'cancelled'}[/yellow]"
        )
        return 1
    return 0


def _run_cat(fs: Fs, remote: str) -> int:
    obj = fs.new_object(remote)
    body = obj.open()
    try:
        shutil.copyfileobj(body, sys.stdout.buffer)
    finally:
        body.close()
    sys.stdout.flush()
    return 0


def _run_copyto(fs: Fs, source: Path, remote: str) -> int:
    stat = source.stat()
    mod_time = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    with source.open("rb") as handle:
        obj = fs.put(handle, remote, mod_time, stat.st_size)
    logger.info("Stored %s (%d bytes)", obj.remote, obj.size)
    return 0


def _run_copy(src_fs: Fs, src_remote: str, dst_fs: Fs, dst_remote: str) -> int:
    if not isinstance(dst_fs, Copier):
        raise BucketFsError(f"{dst_fs} can't do server side copies")
    src = src_fs.new_object(src_remote)
    dst_fs.copy(src, dst_remote)
    return 0


def _run_delete(fs: Fs, remote: str) -> int:
    fs.new_object(remote).remove()
    return 0


def _run_touch(fs: Fs, remote: str) -> int:
    fs.new_object(remote).set_mod_time(datetime.now(timezone.utc))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bucketfs", description="Browse and edit S3 buckets as a filesystem"
    )
    parser.add_argument("--config", type=Path, help="Remotes config file")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="More logging (can be used multiple times)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    for name, text in (
        ("ls", "List all objects under REMOTE:PATH"),
        ("lsd", "List directories under REMOTE:PATH (buckets at the top)"),
        ("mkdir", "Create the bucket"),
        ("rmdir", "Remove the bucket if it is empty"),
    ):
        sub = commands.add_parser(name, help=text)
        sub.add_argument("remote", metavar="REMOTE:PATH")

    for name, text in (
        ("cat", "Write an object to stdout"),
        ("delete", "Remove an object"),
        ("touch", "Set an object's modification time to now"),
    ):
        sub = commands.add_parser(name, help=text)
        sub.add_argument("remote", metavar="REMOTE:PATH")

    copyto = commands.add_parser("copyto", help="Upload a local file")
    copyto.add_argument("source", type=Path)
    copyto.add_argument("remote", metavar="REMOTE:PATH")

    copy = commands.add_parser("copy", help="Server side copy between objects")
    copy.add_argument("source", metavar="REMOTE:PATH")
    copy.add_argument("remote", metavar="REMOTE:PATH")
    return parser


def _dispatch(args: argparse.Namespace, console: Console, stats: Stats) -> int:
    command = args.command
    if command in {"ls", "lsd", "mkdir", "rmdir"}:
        fs = _open_fs(args.remote, args.config, stats)
        if command == "ls":
            return _run_ls(fs, console)
        if command == "lsd":
            return _run_lsd(fs, console)
        if command == "mkdir":
            fs.mkdir()
        else:
            fs.rmdir()
        return 0

    directory, leaf = _split_object_path(args.remote)
    fs = _open_fs(directory, args.config, stats)
    if command == "cat":
        return _run_cat(fs, leaf)
    if command == "delete":
        return _run_delete(fs, leaf)
    if command == "touch":
        code = _run_touch(fs, leaf)
        return 1 if stats.errors else code
    if command == "copyto":
        return _run_copyto(fs, args.source, leaf)
    if command == "copy":
        src_directory, src_leaf = _split_object_path(args.source)
        src_fs = _open_fs(src_directory, args.config, stats)
        return _run_copy(src_fs, src_leaf, fs, leaf)
    raise ConfigError(f"Unknown command {command!r}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    console = Console()
    err_console = Console(stderr=True)
    stats = Stats()
    try:
        return _dispatch(args, console, stats)
    except BucketFsError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        return 1
    except OSError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

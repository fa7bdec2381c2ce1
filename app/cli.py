from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core.config import Settings, get_settings
from .core.errors import IngestError
from .core.logging import configure_logging, level_from_name
from .core.storage import get_storage
from .ingest.models import AccompanyingThumbnail, IngestRequest
from .ingest.tooling import resolve_tool
from .schemas import IngestResponse
from .services.ingest_service import IngestService

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level), json_output=False)

    if getattr(args, "check", False):
        _run_environment_check(settings)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Creative ingest developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg, ffprobe and Ghostscript")

    subparsers = parser.add_subparsers(dest="command")

    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Run the inline pipeline against the configured storage and print the response JSON",
    )
    ingest_parser.add_argument("--file", required=True, help="Path to the asset to ingest")
    ingest_parser.add_argument(
        "--type",
        choices=("resource", "thumbnail"),
        default="resource",
        help="Upload kind (default: resource).",
    )
    ingest_parser.add_argument("--no-watermark", action="store_true", help="Skip the watermark on video previews")
    ingest_parser.add_argument("--thumbnail", help="Client-rendered image for formats without a native preview")
    ingest_parser.set_defaults(func=_cmd_ingest)
    return parser


def _read_file(path_arg: str) -> tuple[Path, bytes]:
    path = Path(path_arg).expanduser().resolve()
    if not path.is_file():
        console.print(f"[red]File not found: {path}[/]")
        sys.exit(2)
    return path, path.read_bytes()


def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    """Ingest one local file.

    The size limit of the HTTP path does not apply here; the file is always
    processed inline.
    """
    path, data = _read_file(args.file)
    thumbnail = None
    if args.thumbnail:
        thumb_path, thumb_data = _read_file(args.thumbnail)
        thumbnail = AccompanyingThumbnail(
            data=thumb_data,
            filename=thumb_path.name,
            content_type=mimetypes.guess_type(thumb_path.name)[0],
        )

    request = IngestRequest(
        filename=path.name,
        content_type=mimetypes.guess_type(path.name)[0],
        data=data,
        kind=args.type,
        no_watermark=args.no_watermark,
        thumbnail=thumbnail,
    )
    service = IngestService(settings, get_storage(settings))
    try:
        result = asyncio.run(service.run_pipeline(request, data))
    except IngestError as exc:
        console.print(f"[red]{exc.message}[/]")
        if exc.details:
            console.print(f"[dim]{exc.details}[/]")
        sys.exit(3)

    response = IngestResponse.from_result(result)
    console.print_json(data=response.model_dump(mode="json", by_alias=True, exclude_none=True))
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/] {warning}")


def _run_environment_check(settings: Settings) -> None:
    """Check for the external binaries the derivations shell out to."""
    checks = {
        "ffmpeg": settings.ffmpeg_path,
        "ffprobe": settings.ffprobe_path,
        "Ghostscript": settings.ghostscript_path,
    }
    table = Table(title="Environment Check")
    table.add_column("Tool")
    table.add_column("Binary")
    table.add_column("Resolved")
    results = {}
    for label, binary in checks.items():
        resolved = resolve_tool(binary)
        results[label] = resolved is not None
        table.add_row(label, binary, resolved or "[red]missing[/]")
    console.print(table)

    if not results["ffmpeg"] or not results["ffprobe"]:
        console.print("[red]Video and audio derivations are disabled without ffmpeg/ffprobe.[/]")
        sys.exit(1)
    if not results["Ghostscript"]:
        console.print("[yellow]AI/EPS thumbnails are disabled without Ghostscript.[/]")
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()

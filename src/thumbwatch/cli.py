import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from PIL import Image, UnidentifiedImageError

from .config import PROFILES, Settings
from .dedup.distance import INCOMPARABLE, hamming_distance
from .dedup.hash import fingerprint_image
from .dedup.tracker import DuplicateEvent
from .logging import get_logger, set_log_level
from .session import DuplicateSession, SessionReport
from .sources.files import FilePixelProvider
from .store import JsonFingerprintStore

app = typer.Typer(help="thumbwatch – perceptual duplicate tracker for image streams", no_args_is_help=True)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff"}


def safe_echo(message: str) -> None:
    """Echo message, falling back to ASCII when the console cannot encode it."""
    try:
        typer.echo(message)
    except UnicodeEncodeError:
        typer.echo(message.encode("ascii", errors="replace").decode("ascii"))


def collect_image_paths(paths: List[Path]) -> List[str]:
    """Expand directories (recursively) into image files, keeping argument order."""
    collected: List[str] = []
    for path in paths:
        if path.is_dir():
            collected.extend(
                str(candidate) for candidate in sorted(path.rglob("*"))
                if candidate.is_file() and candidate.suffix.lower() in IMAGE_SUFFIXES
            )
        else:
            collected.append(str(path))
    return collected


async def _run_scan(session: DuplicateSession, keys: List[str]) -> SessionReport:
    try:
        return await session.process(keys)
    finally:
        await session.aclose()


@app.command()
def scan(
    paths: List[Path] = typer.Argument(..., exists=True, readable=True, help="Image files or directories to scan"),
    profile: Optional[str] = typer.Option(
        None, help=f"Concurrency profile: {', '.join(PROFILES)} (default: $THUMBWATCH_PROFILE or default)"
    ),
    threshold: Optional[int] = typer.Option(None, help="Maximum bit distance for two images to count as duplicates"),
    concurrency: Optional[int] = typer.Option(None, help="Maximum number of images fingerprinted at once"),
    grid_size: Optional[int] = typer.Option(None, help="Side of the sampling grid"),
    store: Optional[Path] = typer.Option(None, help="JSON file recording fingerprints across runs"),
    origin: Optional[str] = typer.Option(None, help="Origin recorded in the store (defaults to the first path)"),
    log_level: Optional[str] = typer.Option(None, help="Override log level (DEBUG, INFO, WARNING...)"),
) -> None:
    """
    Fingerprint every image under PATHS and report visually duplicated ones.

    THUMBWATCH_* environment variables fill in whatever the options leave unset.
    """
    logger = get_logger(__name__)
    if log_level:
        set_log_level(log_level)

    overrides = {
        name: value
        for name, value in (("hamming_threshold", threshold), ("concurrency", concurrency), ("grid_size", grid_size))
        if value is not None
    }
    try:
        settings = Settings.from_env(profile=profile, **overrides)
    except ValueError as exc:
        logger.error(f"Invalid settings: {exc}")
        raise typer.Exit(code=1) from exc

    keys = collect_image_paths(paths)
    if not keys:
        logger.warning("No image files found")
        return

    fingerprint_store = JsonFingerprintStore(store) if store is not None else None
    session = DuplicateSession(
        FilePixelProvider(max_bytes=settings.max_image_bytes),
        settings=settings,
        store=fingerprint_store,
        origin=origin or str(paths[0]),
    )

    def on_duplicate(event: DuplicateEvent) -> None:
        logger.info(f"{event.source_key} duplicates group {event.group_key[:12]}... ({event.member_count} copies)")

    session.add_listener(on_duplicate)

    logger.info(f"Scanning {len(keys)} images with concurrency {settings.concurrency}")
    report = asyncio.run(_run_scan(session, keys))

    stats = session.tracker.stats()
    groups = session.tracker.duplicate_groups()

    safe_echo(f"\n✅ Scan complete!")
    safe_echo(f"🖼️  Images fingerprinted: {stats.tracked}")
    safe_echo(f"⚠️  Failed: {stats.failed}")
    safe_echo(f"🔄 Duplicate groups: {len(groups)}")
    safe_echo(f"📋 Total duplicates: {sum(group.member_count - 1 for group in groups)}")
    for group in groups:
        safe_echo(f"\n[{group.group_key[:16]}] {group.member_count} copies")
        for source_key in group.source_keys:
            safe_echo(f"   {source_key}")
    for source_key, reason in report.failures.items():
        logger.warning(f"Skipped {source_key}: {reason}")


@app.command()
def fingerprint(
    image_path: Path = typer.Argument(..., exists=True, readable=True, help="Image to fingerprint"),
    grid_size: int = typer.Option(32, help="Side of the sampling grid"),
) -> None:
    """Print the hex fingerprint of one image."""
    logger = get_logger(__name__)
    try:
        with Image.open(image_path) as img:
            typer.echo(fingerprint_image(img, grid_size=grid_size))
    except (UnidentifiedImageError, OSError) as exc:
        logger.error(f"Cannot read image {image_path}: {exc}")
        raise typer.Exit(code=1) from exc


@app.command()
def distance(
    first: str = typer.Argument(..., help="First hex fingerprint"),
    second: str = typer.Argument(..., help="Second hex fingerprint"),
) -> None:
    """Print the bit distance between two fingerprints."""
    result = hamming_distance(first, second)
    typer.echo("incomparable" if result == INCOMPARABLE else str(result))


@app.command("store-list")
def store_list(
    store: Path = typer.Option(..., exists=True, readable=True, help="JSON fingerprint store"),
) -> None:
    """List fingerprints seen at more than one origin first, then the rest."""
    records = sorted(JsonFingerprintStore(store).list_all(), key=lambda record: -record.count)
    safe_echo(f"📊 {len(records)} fingerprints")
    for record in records:
        safe_echo(f"{record.fingerprint[:16]}  count={record.count}  last_seen={record.last_seen_at}")


@app.command("store-clear")
def store_clear(
    store: Path = typer.Option(..., help="JSON fingerprint store"),
) -> None:
    """Delete every record in the store."""
    JsonFingerprintStore(store).clear()
    safe_echo(f"🧹 Cleared {store}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()

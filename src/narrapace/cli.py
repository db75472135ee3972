"""
Command-Line Interface for narrapace.

Works directly on the JSON library; --serve starts the HTTP API.

Usage Examples:
    # Import a book (JSON list of pages, or text with pages separated by blank lines)
    narrapace --import notes.txt --title "Physics Notes"

    # List saved books
    narrapace --list

    # Timing summary at 1.5x using the learned rate
    narrapace --book physics_notes_1700000000000 --speed 1.5

    # Re-learn the rate from measured page durations and save it
    narrapace --book physics_notes_1700000000000 --recalc --json

    # Narrate with the configured narrator (Ctrl+C to stop and save position)
    narrapace --book physics_notes_1700000000000 --play

    # Serve the HTTP API
    narrapace --serve --port 8000

Environment Variables:
    NARRAPACE_SETTINGS: Settings file (default config/settings.yaml)
    NARRAPACE_STORE_DIR: Library directory override
    NARRAPACE_NARRATOR: Narrator engine (simulated, pyttsx3)
"""
from __future__ import annotations

import argparse
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from narrapace.core.config import ConfigValidationError, PacerConfig, load_settings_or_default
from narrapace.core.logging import configure_logging, get_logger, info, set_session_id
from narrapace.pacing.driver import PlaybackState
from narrapace.pacing.rate import RateEstimator
from narrapace.pacing.timeline import compute_time_display, format_time, safe_effective_rate
from narrapace.services.player_service import PlayerError, PlayerOpenRequest, PlayerService
from narrapace.store.json_store import JsonFileStore
from narrapace.store.models import NarrationPage, SavedBook


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="narrapace CLI (book pacing and playback)")

    parser.add_argument("--settings", default=os.getenv("NARRAPACE_SETTINGS", "config/settings.yaml"),
                        help="Settings YAML path")

    # Library
    parser.add_argument("--list", action="store_true", help="List saved books")
    parser.add_argument("--import", dest="import_file", metavar="FILE",
                        help="Import pages from a JSON list or a blank-line separated text file")
    parser.add_argument("--title", help="Title for --import (defaults to the file name)")

    # Book operations
    parser.add_argument("--book", metavar="ID", help="Book id")
    parser.add_argument("--speed", type=float, default=1.0, help="Speed multiplier for the summary")
    parser.add_argument("--recalc", action="store_true",
                        help="Recalculate the rate from measured page durations and save it")
    parser.add_argument("--play", action="store_true", help="Narrate the book from its last position")
    parser.add_argument("--autoplay", action="store_true", help="With --play, continue across pages")

    # Output
    parser.add_argument("--json", action="store_true", help="Print JSON output")

    # HTTP server
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API with uvicorn")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address for --serve")
    parser.add_argument("--port", type=int, default=8000, help="Port for --serve")

    return parser.parse_args(argv)


def _load_pages_file(path: Path) -> List[NarrationPage]:
    """
    Read pages from a file.

    ``.json`` files hold a list of strings or of page objects; anything
    else is plain text with pages separated by blank lines.

    Raises:
        SystemExit: If the file yields no pages.
    """
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(raw)
        if isinstance(data, dict):
            data = data.get("pages") or data.get("scripts") or []
        pages = [
            NarrationPage(text=item) if isinstance(item, str) else NarrationPage.model_validate(item)
            for item in data
        ]
    else:
        blocks = [b.strip() for b in raw.replace("\r\n", "\n").split("\n\n")]
        pages = [NarrationPage(text=b) for b in blocks if b]

    if not pages:
        raise SystemExit(f"No pages found in {path}")
    return pages


def _book_summary(book: SavedBook, estimator: RateEstimator, speed: float) -> Dict[str, Any]:
    """Per-page and total durations derived from the current rate estimate."""
    lengths = [len(p.text) for p in book.pages]
    eff = safe_effective_rate(estimator.rate, speed)
    pages = []
    for i, page in enumerate(book.pages):
        measured = page.measured_duration_seconds
        pages.append({
            "index": i,
            "chars": lengths[i],
            "estimated_seconds": round(lengths[i] / eff, 2),
            "measured_seconds": round(measured / speed, 2) if measured else None,
        })
    totals = compute_time_display(lengths, 0, 0.0, estimator.rate, speed)
    return {
        "book_id": book.id,
        "title": book.title,
        "speed": speed,
        "rate": round(estimator.rate, 3),
        "effective_rate": round(eff, 3),
        "total_chars": sum(lengths),
        "total_seconds": round(totals.book_duration, 2),
        "pages": pages,
        "last_position": book.last_position.model_dump() if book.last_position else None,
    }


def _print_summary(summary: Dict[str, Any]) -> None:
    print(f"{summary['title']} ({summary['book_id']})")
    print(f"  rate {summary['rate']:.2f} chars/s at 1.0x, {summary['effective_rate']:.2f} at {summary['speed']}x")
    for page in summary["pages"]:
        measured = page["measured_seconds"]
        measured_txt = format_time(measured) if measured is not None else "-"
        print(f"  page {page['index'] + 1:>3}  {page['chars']:>6} chars  "
              f"~{format_time(page['estimated_seconds']):>6}  measured {measured_txt}")
    print(f"  total {summary['total_chars']} chars  ~{format_time(summary['total_seconds'])}")


def _play(service: PlayerService, book_id: str, speed: float, autoplay: bool, as_json: bool) -> int:
    try:
        sid = service.open_session(PlayerOpenRequest(book_id=book_id, speed=speed, autoplay=autoplay))
    except PlayerError as e:
        print(json.dumps(e.to_dict()) if as_json else f"[FAILED] {e.message}")
        return 1

    driver = service.get_session(sid)
    driver.play()
    try:
        while True:
            time.sleep(0.5)
            snap = driver.snapshot()
            if not as_json:
                times = snap.formatted_times
                sys.stdout.write(
                    f"\r  page {snap.page_index + 1}/{snap.page_count}  "
                    f"{times['page_elapsed']} / {times['page_duration']}  "
                    f"book {times['book_elapsed']} / {times['book_duration']}  "
                    f"rate {snap.rate:.1f}   "
                )
                sys.stdout.flush()
            if driver.state in (PlaybackState.IDLE, PlaybackState.PAUSED_MANUAL):
                break
    except KeyboardInterrupt:
        pass
    finally:
        position = service.close_session(sid)

    payload = {"ok": True, "book_id": book_id, "position": position.model_dump(),
               "rate": round(driver.estimator.rate, 3)}
    if as_json:
        print(json.dumps(payload))
    else:
        print(f"\nStopped at page {position.page_index + 1}, "
              f"{position.fractional_progress * 100:.0f}% (rate {payload['rate']:.2f} chars/s)")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("narrapace.cli")
    set_session_id("cli")

    if args.serve:
        import uvicorn
        os.environ["NARRAPACE_SETTINGS"] = args.settings
        info(log, "serve", host=args.host, port=args.port)
        uvicorn.run("narrapace.main:app", host=args.host, port=args.port)
        return 0

    settings = load_settings_or_default(args.settings)
    try:
        config: PacerConfig = settings.get_config()
    except ConfigValidationError as e:
        print(f"[FAILED] invalid settings: {e}")
        return 2
    store = JsonFileStore(config.store.base_dir)

    if args.import_file:
        path = Path(args.import_file)
        if not path.exists():
            print(f"[FAILED] file not found: {path}")
            return 1
        pages = _load_pages_file(path)
        book_id = store.save_book(args.title or path.stem, pages)
        info(log, "book_imported", book_id=book_id, pages=len(pages))
        if args.json:
            print(json.dumps({"ok": True, "book_id": book_id, "pages": len(pages)}))
        else:
            print(book_id)
        return 0

    if args.list:
        books = store.list_books()
        if args.json:
            print(json.dumps([
                {"id": b.id, "title": b.title, "date": b.date, "pages": len(b.pages)} for b in books
            ], ensure_ascii=False))
        else:
            for b in books:
                print(f"{b.id}\t{b.title}\t{len(b.pages)} pages\t{b.date}")
        return 0

    if not args.book:
        print("Provide --book ID, --list or --import FILE.")
        return 1

    if args.speed not in config.playback.speeds:
        print(f"[FAILED] --speed must be one of {list(config.playback.speeds)}")
        return 1

    if args.play:
        return _play(PlayerService(settings, store=store), args.book, args.speed, args.autoplay, args.json)

    book = store.load_book(args.book)
    if book is None:
        print(json.dumps({"ok": False, "error": "BOOK_NOT_FOUND"}) if args.json else f"[FAILED] book not found: {args.book}")
        return 1

    estimator = RateEstimator.initialize(store.load_rate(), config.pacing)
    if args.recalc:
        sample = estimator.recalculate_from_history(book.pages)
        if sample.accepted:
            store.save_rate(estimator.rate)
        info(log, "rate_recalc", accepted=sample.accepted, rate=round(estimator.rate, 2))

    summary = _book_summary(book, estimator, args.speed)
    if args.json:
        print(json.dumps({"ok": True, **summary}, ensure_ascii=False))
    else:
        _print_summary(summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
SnapQuest CLI - Command-line interface.

Usage:
    snapquest detect <image>                  Identify the landmark in a photo
    snapquest analyze <image>                 Describe a photo in free text
    snapquest games                           List built-in games
    snapquest progress <game_id>              Show progress for a game
    snapquest complete <game_id> <location>   Mark a location as found
    snapquest register|login <username>       Start an authenticated session
    snapquest logout                          End the session (progress is kept)
    snapquest sync                            Push unsynced progress
    snapquest locations                       List saved locations
    snapquest serve                           Run the HTTP API

Client-side state lives in SNAPQUEST_CACHE_DIR; the remote store is
SNAPQUEST_API_URL.
"""

import argparse
import asyncio
import getpass
import json
import mimetypes
import sys
from pathlib import Path

from .config import Settings
from .logging_config import setup_logging_from_settings


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="SnapQuest - Photo-based location discovery",
        prog="snapquest",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    detect_parser = subparsers.add_parser("detect", help="Identify the landmark in a photo")
    detect_parser.add_argument("image", help="Path to image file")
    detect_parser.add_argument("--save", action="store_true", help="Add the result to the collection")
    detect_parser.add_argument("--notes", help="Notes to store with a saved location")

    analyze_parser = subparsers.add_parser("analyze", help="Describe a photo in free text")
    analyze_parser.add_argument("image", help="Path to image file")

    subparsers.add_parser("games", help="List built-in games")

    progress_parser = subparsers.add_parser("progress", help="Show progress for a game")
    progress_parser.add_argument("game_id", help="Game id (historic, cultural, modern)")

    complete_parser = subparsers.add_parser("complete", help="Mark a location as found")
    complete_parser.add_argument("game_id", help="Game id")
    complete_parser.add_argument("location_id", help="Location id within the game")

    for name in ("register", "login"):
        auth_parser = subparsers.add_parser(name, help=f"{name.capitalize()} and sync")
        auth_parser.add_argument("username")
        auth_parser.add_argument("--password", help="Password (prompted if omitted)")
        if name == "register":
            auth_parser.add_argument("--email", required=True)

    subparsers.add_parser("logout", help="End the session")
    subparsers.add_parser("sync", help="Push progress not yet acknowledged by the server")
    subparsers.add_parser("locations", help="List saved locations")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=5000)

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    setup_logging_from_settings(settings)

    commands = {
        "detect": cmd_detect,
        "analyze": cmd_analyze,
        "games": cmd_games,
        "progress": cmd_progress,
        "complete": cmd_complete,
        "register": cmd_login,
        "login": cmd_login,
        "logout": cmd_logout,
        "sync": cmd_sync,
        "locations": cmd_locations,
        "serve": cmd_serve,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    command(args, settings)


def _read_image(path: str) -> tuple[bytes, str]:
    image_path = Path(path)
    if not image_path.exists():
        print(f"Error: File not found: {path}")
        sys.exit(1)
    mime_type, _ = mimetypes.guess_type(image_path.name)
    return image_path.read_bytes(), mime_type or "image/jpeg"


def _engine(settings):
    from .sync import FileCacheStore, HttpRemoteProgressStore, SyncEngine

    return SyncEngine(
        local=FileCacheStore(settings.cache_dir),
        remote=HttpRemoteProgressStore(settings.api_url, timeout=settings.remote_timeout),
    )


def _print_warnings(warnings):
    for warning in warnings:
        print(f"  ! {warning}")


def cmd_detect(args, settings):
    """Run the detection pipeline on a photo."""
    from .detection import build_pipeline
    from .errors import DetectionFailed

    image_bytes, mime_type = _read_image(args.image)
    pipeline = build_pipeline(settings)

    async def run():
        try:
            detected = await pipeline.detect(image_bytes, mime_type)
        finally:
            await pipeline.geocoder.close()
        if args.save and not detected.is_soft_failure:
            engine = _engine(settings)
            try:
                result = await engine.save_location(detected, notes=args.notes)
            finally:
                await engine.remote.close()
            _print_warnings(result.warnings)
        return detected

    try:
        detected = asyncio.run(run())
    except DetectionFailed as e:
        print(f"Detection failed: {e}")
        print("Try again with the same photo.")
        sys.exit(2)

    print(f"Name:        {detected.name}")
    print(f"Location:    {detected.location}")
    print(f"Description: {detected.description}")
    if detected.coordinates:
        print(f"Coordinates: {detected.coordinates.lat:.6f}, {detected.coordinates.lon:.6f}")
    else:
        print("Coordinates: unknown")
    if detected.is_soft_failure:
        print("\nNo landmark recognized. Try another angle or a clearer photo.")


def cmd_analyze(args, settings):
    """Free-form description of a photo."""
    from .detection import build_pipeline
    from .errors import DetectionFailed

    image_bytes, mime_type = _read_image(args.image)
    pipeline = build_pipeline(settings)
    try:
        print(asyncio.run(pipeline.analyze(image_bytes, mime_type)))
    except DetectionFailed as e:
        print(f"Analysis failed: {e}")
        sys.exit(2)


def cmd_games(args, settings):
    """List games with their locations."""
    from .games import default_catalog

    for game in default_catalog().list_games():
        print(f"{game.id:10} {game.name} ({game.difficulty}, {game.total_points} pts)")
        for loc in game.locations:
            print(f"    {loc.id}. {loc.name} - {loc.points} pts")


def cmd_progress(args, settings):
    """Show progress for one game."""
    from .games import calculate_game_completion, calculate_total_score, get_game_status

    engine = _engine(settings)

    async def run():
        try:
            return await engine.load_progress(args.game_id)
        finally:
            await engine.remote.close()

    entry = asyncio.run(run())
    game = engine.catalog.get(args.game_id)
    total = len(game.locations) if game else 0
    print(f"Game:      {args.game_id}")
    print(f"Status:    {get_game_status(entry).value}")
    print(f"Found:     {len(entry.completed_locations)}/{total} "
          f"({calculate_game_completion(len(entry.completed_locations), total):.0f}%)")
    if game:
        print(f"Score:     {calculate_total_score(game, entry.completed_locations)}/{game.total_points}")
    for loc in entry.completed_locations:
        game_location = game.get_location(loc.location_id) if game else None
        name = game_location.name if game_location else loc.location_id
        print(f"  - {name} at {loc.timestamp.isoformat()}")


def cmd_complete(args, settings):
    """Record a found location."""
    engine = _engine(settings)

    async def run():
        try:
            return await engine.record_completion(args.game_id, args.location_id)
        finally:
            await engine.remote.close()

    result = asyncio.run(run())
    if not result.changed:
        print(f"Location {args.location_id} was already completed")
    else:
        print(f"Recorded {args.game_id}/{args.location_id}"
              + (" (synced)" if result.remote_synced else ""))
    if result.entry.completed:
        print(f"Game {args.game_id} completed!")
    _print_warnings(result.warnings)


def cmd_login(args, settings):
    """Register or log in, then merge progress and migrate saved locations."""
    from .errors import SnapQuestError

    password = args.password or getpass.getpass("Password: ")
    engine = _engine(settings)

    async def run():
        try:
            if args.command == "register":
                session = await engine.remote.register(args.username, args.email, password)
            else:
                session = await engine.remote.login(args.username, password)
            return await engine.login(session)
        finally:
            await engine.remote.close()

    try:
        report = asyncio.run(run())
    except SnapQuestError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Logged in as {args.username}")
    if report.total:
        print(f"Migrated {len(report.migrated)}/{report.total} saved locations")
        for location_id, reason in report.failed.items():
            print(f"  ! {location_id}: {reason}")


def cmd_logout(args, settings):
    engine = _engine(settings)
    engine.logout()
    print("Logged out")


def cmd_sync(args, settings):
    engine = _engine(settings)

    async def run():
        try:
            return await engine.flush_pending()
        finally:
            await engine.remote.close()

    result = asyncio.run(run())
    print(f"Synced: {', '.join(result.synced) or 'nothing'}")
    if result.pending:
        print(f"Still pending: {', '.join(result.pending)}")
    _print_warnings(result.warnings)


def cmd_locations(args, settings):
    engine = _engine(settings)

    async def run():
        try:
            return await engine.list_saved_locations()
        finally:
            await engine.remote.close()

    locations = asyncio.run(run())
    print(json.dumps(
        [{k: v for k, v in loc.to_dict().items() if k != "imageReference"} for loc in locations],
        indent=2,
    ))


def cmd_serve(args, settings):
    """Run the API with uvicorn."""
    import uvicorn
    from .api.app import create_app

    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()

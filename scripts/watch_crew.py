#!/usr/bin/env python3
"""Create or join a crew and watch its live map from a terminal.

Usage
-----
Set environment variables and run::

    export CREWMAP_TRACCAR_SERVER="https://track.example.com"
    export CREWMAP_TRACCAR_EMAIL="ops@example.com"
    export CREWMAP_TRACCAR_PASSWORD="..."
    export CREWMAP_SUPABASE_URL="https://<project>.supabase.co"
    export CREWMAP_SUPABASE_KEY="..."

    python scripts/watch_crew.py create --crew "Hikers" --name Alex --device phone-1
    python scripts/watch_crew.py join --code AB3D5F --name Sam --device phone-2
    python scripts/watch_crew.py watch
    python scripts/watch_crew.py leave

The session created by ``create``/``join`` is stored in
``CREWMAP_SESSION_FILE`` (default ``~/.crewmap/session.json``).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime

from crewmap import (
    CrewMapConfig,
    CrewMapError,
    CrewSession,
    CrewTracker,
    PositionFeed,
    SessionStore,
    SupabaseStore,
    create_crew,
    join_crew,
    open_tracker,
)


def _print_state(tracker: CrewTracker) -> None:
    now = datetime.now().astimezone().strftime("%H:%M:%S")
    status = "live" if tracker.feed_connected else "offline"
    print(f"[{now}] {tracker.session.crew_name} ({tracker.session.invite_code}) feed={status}")
    for marker in tracker.markers():
        observed = marker.position.observed_at.astimezone().strftime("%H:%M:%S")
        points = len(tracker.trails.points(marker.member_id))
        print(f"  {marker.initial} {marker.label:<16} {marker.latitude:>10.5f} {marker.longitude:>11.5f}  {observed}  trail={points}")
    focus = tracker.focus_point()
    if focus is not None:
        print(f"  focus: {focus[0]:.5f}, {focus[1]:.5f}")


async def _enroll(args: argparse.Namespace, config: CrewMapConfig, sessions: SessionStore) -> CrewSession:
    config.require_feed()
    config.require_store()
    async with PositionFeed(config) as feed, SupabaseStore(config) as store:
        if args.command == "create":
            session = await create_crew(
                store, feed, crew_name=args.crew, member_name=args.name, device_unique_id=args.device
            )
        else:
            session = await join_crew(
                store, feed, invite_code=args.code, member_name=args.name, device_unique_id=args.device
            )
    sessions.set(session)
    return session


async def _watch(config: CrewMapConfig, session: CrewSession, *, as_json: bool) -> None:
    async with open_tracker(config, session) as tracker:
        if as_json:
            tracker.add_listener(lambda t: print(json.dumps(t.trails_geojson())))
        else:
            tracker.add_listener(_print_state)
        _print_state(tracker)
        await asyncio.Event().wait()


async def main() -> int:
    parser = argparse.ArgumentParser(description="Share and watch crew locations.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a new crew")
    create.add_argument("--crew", required=True, help="Crew name")
    create.add_argument("--name", required=True, help="Your name in the crew")
    create.add_argument("--device", required=True, help="Device identifier configured in the tracking app")

    join = sub.add_parser("join", help="Join a crew with an invite code")
    join.add_argument("--code", required=True, help="Six character invite code")
    join.add_argument("--name", required=True, help="Your name in the crew")
    join.add_argument("--device", required=True, help="Device identifier configured in the tracking app")

    watch = sub.add_parser("watch", help="Follow the crew's live map")
    watch.add_argument("--json", action="store_true", dest="json_mode", help="Print trails as GeoJSON on each update")

    sub.add_parser("leave", help="Forget the local crew session")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = CrewMapConfig.from_env()
    sessions = SessionStore(config.session_file)

    if args.command == "leave":
        sessions.clear()
        print("Session cleared")
        return 0

    try:
        if args.command in ("create", "join"):
            session = await _enroll(args, config, sessions)
            print(f"Crew {session.crew_name!r} invite code: {session.invite_code}")
            print(f"Configure your tracking app with device identifier {args.device!r}")
            return 0

        session = sessions.get()
        if session is None:
            print("No crew session; run 'create' or 'join' first", file=sys.stderr)
            return 1
        await _watch(config, session, as_json=args.json_mode)
    except CrewMapError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass

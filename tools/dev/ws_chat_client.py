#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
AroundU — Dev WebSocket Chat Client (/ws/chat)
----------------------------------------------
Interactive console tool for poking the chat server over WebSocket.

Features:
- Prints every server event as it arrives (room_joined, receive_message, ...).
- Slash commands for the presence / matching events, plain text for chat.
- Optional --lat/--lon/--radius to register a location right after connect.
- AUTO-RECONNECT when the connection drops (with backoff). The server keeps
  no state across connections, so a reconnect starts a fresh anonymous
  session.

Commands:
    /loc <lat> <lon> <radius>   register_location
    /nearby                     get_nearby_users
    /name <display name>        update_profile displayName
    /gender <tag>               update_profile genderTag
    /interest <tag|ANY>         update_profile interestTag
    /match                      start_matching
    /invite <id>                request_chat
    /accept <id> | /reject <id> respond_chat
    /typing on|off              typing
    /leave                      leave_room
    /quit                       exit
    anything else               send_message
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed

DEFAULT_SERVER = "ws://127.0.0.1:5001/ws/chat"


class QuitRequested(Exception):
    """User typed /quit (or hit Ctrl+D)."""


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="AroundU — Dev WebSocket Chat Client (/ws/chat)",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=DEFAULT_SERVER,
        help=f"WebSocket server URL (default: {DEFAULT_SERVER})",
    )
    parser.add_argument("--lat", type=float, default=None, help="Latitude to register on connect.")
    parser.add_argument("--lon", type=float, default=None, help="Longitude to register on connect.")
    parser.add_argument(
        "--radius",
        type=float,
        default=1000.0,
        help="Search radius in meters (default: 1000).",
    )
    parser.add_argument(
        "--interest",
        type=str,
        default=None,
        help="Interest tag to set on connect (e.g. ANY, FEMALE).",
    )
    parser.add_argument(
        "--match",
        action="store_true",
        help="Send start_matching right after connecting.",
    )
    return parser.parse_args()


# ---------------------------------------------------------------------------
# Frame helpers
# ---------------------------------------------------------------------------


def frame(event: str, data: Any = None) -> str:
    return json.dumps({"event": event, "data": data if data is not None else {}})


def parse_command(line: str) -> Optional[Tuple[str, Any]]:
    """
    Turn one console line into (event, data).

    Returns None for an unknown or malformed slash command.
    Raises QuitRequested for /quit and /exit.
    """
    if not line.startswith("/"):
        return "send_message", {"text": line}

    cmd, _, rest = line.partition(" ")
    cmd = cmd.lower()
    rest = rest.strip()
    parts = rest.split()

    if cmd in {"/quit", "/exit"}:
        raise QuitRequested()
    if cmd == "/loc" and len(parts) == 3:
        try:
            lat, lon, radius = (float(p) for p in parts)
        except ValueError:
            return None
        return "register_location", {"lat": lat, "lon": lon, "radius": radius}
    if cmd == "/nearby":
        return "get_nearby_users", {}
    if cmd == "/name" and rest:
        return "update_profile", {"displayName": rest}
    if cmd == "/gender" and rest:
        return "update_profile", {"genderTag": rest}
    if cmd == "/interest" and rest:
        return "update_profile", {"interestTag": rest}
    if cmd == "/match":
        return "start_matching", {}
    if cmd == "/invite" and len(parts) == 1:
        return "request_chat", {"targetId": parts[0]}
    if cmd in {"/accept", "/reject"} and len(parts) == 1:
        return "respond_chat", {"targetId": parts[0], "accept": cmd == "/accept"}
    if cmd == "/typing" and parts and parts[0] in {"on", "off"}:
        return "typing", {"isTyping": parts[0] == "on"}
    if cmd == "/leave":
        return "leave_room", {}
    return None


def describe_event(event: str, data: Dict[str, Any]) -> str:
    """One-line human summary of a server event."""
    if event == "receive_message":
        return f"{data.get('displayName')}: {data.get('text')}"
    if event == "user_typing":
        return f"... {data.get('userId')} {'is typing' if data.get('isTyping') else 'stopped typing'}"
    if event == "nearby_users":
        rows = [
            f"  {u.get('distanceMeters'):>6} m  {u.get('displayName')}  ({u.get('id')})"
            for u in data.get("users", [])
        ]
        return "nearby:\n" + ("\n".join(rows) if rows else "  (nobody)")
    if event == "room_joined":
        names = ", ".join(u.get("displayName", "?") for u in data.get("room", {}).get("users", []))
        return f"joined room with: {names}"
    if event == "incoming_request":
        sender = data.get("from", {})
        return f"chat request from {sender.get('displayName')} ({sender.get('id')}), answer with /accept or /reject"
    if event == "error":
        return f"server error: {data.get('code')} - {data.get('message')}"
    return f"{event}: {json.dumps(data, ensure_ascii=False)}"


# ---------------------------------------------------------------------------
# Core loop (for one connection)
# ---------------------------------------------------------------------------


async def _print_events(ws) -> None:
    async for raw in ws:
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            print(f"\n[raw] {raw}")
            continue
        print(f"\n{describe_event(str(msg.get('event')), msg.get('data') or {})}")


async def run_single_session(args: argparse.Namespace) -> None:
    """Handles one connect -> chat -> disconnect cycle."""
    print("Type a message and press Enter. /quit to exit.\n")
    print(f"[client] server : {args.server}\n")

    async with websockets.connect(args.server, ping_interval=None, ping_timeout=None) as ws:
        print("Connected.\n")
        reader = asyncio.create_task(_print_events(ws))

        try:
            if args.interest:
                await ws.send(frame("update_profile", {"interestTag": args.interest}))
            if args.lat is not None and args.lon is not None:
                await ws.send(
                    frame("register_location", {"lat": args.lat, "lon": args.lon, "radius": args.radius})
                )
            if args.match:
                await ws.send(frame("start_matching"))

            while True:
                if reader.done():
                    # Surfaces ConnectionClosed from the reader.
                    reader.result()
                    return

                try:
                    line = (await asyncio.to_thread(input, "> ")).strip()
                except EOFError:
                    raise QuitRequested()

                if not line:
                    continue
                parsed = parse_command(line)
                if parsed is None:
                    print("Unknown command. See the module docstring for the list.")
                    continue
                event, data = parsed
                await ws.send(frame(event, data))
        finally:
            reader.cancel()


# ---------------------------------------------------------------------------
# Auto-reconnect wrapper
# ---------------------------------------------------------------------------


async def run_with_reconnect(args: argparse.Namespace) -> None:
    """
    Reconnect on failure with backoff 3s, 6s, 9s, ... capped at 30s.
    Ctrl+C or /quit at any time to exit.
    """
    attempt = 0
    base_delay = 3  # seconds

    while True:
        attempt += 1
        try:
            print(f"Connecting to '{args.server}' (attempt {attempt}) ...")
            await run_single_session(args)
            return
        except QuitRequested:
            print("Bye.")
            return
        except ConnectionClosed as exc:
            print(f"\nConnection closed: {exc}")
        except OSError as exc:
            print(f"\nConnection error: {exc}")

        delay = min(base_delay * attempt, 30)
        print(f"Reconnecting in {delay} seconds... (Ctrl+C to stop)")
        await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    args = parse_args()
    try:
        asyncio.run(run_with_reconnect(args))
    except KeyboardInterrupt:
        print("\nBye.")
        sys.exit(0)


if __name__ == "__main__":
    main()

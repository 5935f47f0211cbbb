"""CLI entry point for spotify-now-playing.

Runs the server, inspects the stored token record and queries a running
server for the current track.
"""
import argparse
import asyncio
import sys

import requests

from config import Settings, load_env, load_settings
from logging_config import flush_logs
from main import VERSION, build_app, load_validated_settings
from oauth.errors import ConfigError
from oauth.stores import create_token_store


# ============== Helper Functions ==============

def server_url(settings: Settings) -> str:
    """Base URL of the locally running server."""
    host = "127.0.0.1" if settings.host in ("0.0.0.0", "::") else settings.host
    return f"http://{host}:{settings.port}"


def fetch_json(url: str, timeout: float = 10) -> tuple[int | None, dict]:
    """GET a JSON document. Returns (status, body); status is None on network error."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        return None, {"error": f"Network error: {e}"}
    try:
        return response.status_code, response.json()
    except ValueError:
        return response.status_code, {"error": response.text}


def format_track(data: dict) -> str:
    """One-line description of a /current payload."""
    if not data.get("name"):
        return data.get("message", "Nothing playing")
    line = f"{data['name']} - {data.get('artist') or 'Unknown artist'}"
    if data.get("album"):
        line += f" ({data['album']})"
    if not data.get("playing"):
        line += " [paused]"
    return line


# ============== Commands ==============

def cmd_start():
    """Start the server in the foreground."""
    import uvicorn

    settings = load_validated_settings()
    app = build_app(settings)
    print(f"Server running at {server_url(settings)}")
    print(f"Login endpoint: {server_url(settings)}/login")
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    finally:
        flush_logs()


def cmd_status():
    """Show current status."""
    load_env()
    settings = load_settings()

    print("\n" + "=" * 50)
    print("  Spotify Now Playing Status")
    print("=" * 50)

    print("\n[Config]")
    try:
        settings.validate()
        print("  Status:   Valid")
    except ConfigError as e:
        print("  Status:   Invalid")
        print(f"  Error:    {e.message}")
    if settings.client_id:
        print(f"  Client:   {settings.client_id[:8]}...")
    print(f"  Callback: {settings.redirect_uri or '(not set)'}")
    print(f"  Mode:     {settings.response_mode}")

    print("\n[Tokens]")
    if settings.token_store == "supabase" and not settings.has_supabase():
        print("  Store:    supabase (not configured)")
    else:
        store = create_token_store(settings)
        tokens = asyncio.run(store.load())
        print(f"  Store:    {store.describe()}")
        if tokens and tokens.access_token:
            print("  Status:   Stored")
            print(f"  Refresh:  {'yes' if tokens.refresh_token else 'no'}")
        else:
            print("  Status:   Not logged in")
            print(f"  Action:   Open {server_url(settings)}/login in a browser")

    print("\n[Server]")
    status, body = fetch_json(f"{server_url(settings)}/health", timeout=3)
    if status == 200:
        print(f"  Status:   Running at {server_url(settings)}")
        print(f"  Auth:     {'yes' if body.get('authenticated') else 'no'}")
    else:
        print("  Status:   Not running")

    print("\n" + "=" * 50 + "\n")


def cmd_current():
    """Print the currently playing track from the running server."""
    load_env()
    settings = load_settings()

    status, body = fetch_json(f"{server_url(settings)}/current")
    if status is None:
        print(f"[X] {body['error']}")
        print("  Is the server running? Start it with: now-playing start")
        sys.exit(1)
    if status != 200:
        print(f"[X] {status}: {body.get('error', 'Unknown error')}")
        if status == 401:
            print(f"  Log in at {server_url(settings)}/login")
        sys.exit(1)
    print(format_track(body))


def cmd_logout():
    """Clear the stored token record."""
    load_env()
    settings = load_settings()
    if settings.token_store == "supabase" and not settings.has_supabase():
        print("[X] Supabase is not configured.")
        sys.exit(1)

    store = create_token_store(settings)
    if asyncio.run(store.clear()):
        print(f"Tokens removed from: {store.describe()}")
        print("Restart the server to drop tokens it still holds in memory.")
    else:
        print("[X] Could not clear tokens.")
        sys.exit(1)


def cmd_version():
    """Show version information."""
    print(f"spotify-now-playing v{VERSION}")


def cmd_help():
    """Show detailed help."""
    print("""
Spotify Now Playing - currently playing track with persisted OAuth tokens

USAGE:
    now-playing <command>

COMMANDS:
    start       Start the server (foreground)
    status      Show configuration, stored tokens and server state
    current     Print the track playing right now
    logout      Remove the stored tokens
    version     Show version information
    help        Show this help message

QUICK START:
    1. Put SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET and SPOTIFY_REDIRECT_URI in .env
    2. Run 'now-playing start'
    3. Open http://localhost:3001/login and approve access
    4. Run 'now-playing current'
""")


# ============== Main Entry Point ==============

COMMANDS = {
    "start": cmd_start,
    "status": cmd_status,
    "current": cmd_current,
    "logout": cmd_logout,
    "version": cmd_version,
    "help": cmd_help,
}


def main(argv=None):
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        prog="now-playing",
        description="Spotify Now Playing - currently playing track with persisted OAuth tokens",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="start",
        choices=list(COMMANDS),
        help="Command to run (default: start)"
    )
    args = parser.parse_args(argv)
    COMMANDS[args.command]()


if __name__ == "__main__":
    main()

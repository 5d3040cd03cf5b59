"""
Tic Tac Toe Relay CLI - Command-line interface for the relay.

Usage:
    tictactoe-relay serve [--host H] [--port P]   Run the relay server
    tictactoe-relay decode <transcript>           Decode captured engine output
"""

import argparse
import logging
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Tic Tac Toe Relay - real-time bridge to a Tic Tac Toe engine",
        prog="tictactoe-relay",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the relay server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: RELAY_PORT or 3002)")
    serve_parser.add_argument("--log-level", default=None, help="Logging level (default: RELAY_LOG_LEVEL)")

    # Decode command
    decode_parser = subparsers.add_parser("decode", help="Decode a captured engine transcript")
    decode_parser.add_argument("transcript", help="File holding raw engine stdout")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "decode":
        cmd_decode(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_serve(args):
    """Run the relay under uvicorn."""
    import uvicorn

    from .config import RelaySettings

    settings = RelaySettings.from_env()
    if args.port is not None:
        settings.port = args.port
    if args.log_level:
        settings.log_level = args.log_level.upper()

    # Configure logging before the app module's import-time setup runs
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from .api.app import create_app

    app = create_app(settings=settings)
    print(f"Server listening to port {settings.port}.")
    uvicorn.run(app, host=args.host, port=settings.port, log_level=settings.log_level.lower())


def cmd_decode(args):
    """Print one protocol event per decoded engine line."""
    from .engine.protocol import ProtocolDecoder

    try:
        with open(args.transcript, "rb") as f:
            data = f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {args.transcript}")
        sys.exit(1)

    decoder = ProtocolDecoder()
    events = decoder.feed(data) + decoder.flush()
    for event in events:
        print(event)
    print(f"\n{len(events)} event(s)")


if __name__ == "__main__":
    main()

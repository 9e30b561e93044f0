"""
StorySync CLI - Command-line interface for the server.

Usage:
    storysync serve [--host HOST] [--port PORT]   Run the sync server
    storysync code [--length N]                   Print a new session code
"""

import argparse
import logging
import os
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="StorySync - Real-time collaborative session server",
        prog="storysync",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the sync server")
    serve_parser.add_argument("--host", default=os.getenv("STORYSYNC_HOST", "0.0.0.0"), help="Bind address")
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")), help="Port")
    serve_parser.add_argument(
        "--log-level",
        default=os.getenv("STORYSYNC_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING...)",
    )

    # Code command
    code_parser = subparsers.add_parser("code", help="Generate a session code")
    code_parser.add_argument("--length", type=int, default=6, help="Code length")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "code":
        cmd_code(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_serve(args):
    """Run the server with uvicorn."""
    import uvicorn
    from .api.app import create_app

    level = args.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"StorySync listening on http://{args.host}:{args.port}")
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=level.lower())


def cmd_code(args):
    """Print a new session code."""
    from .codes import generate_session_code

    try:
        print(generate_session_code(args.length))
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

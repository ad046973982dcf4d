"""Development server entrypoint for the gateway (use ``wsgi:app`` under gunicorn)."""
from __future__ import annotations

import argparse
import os
from typing import Optional, Sequence

from . import create_app


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mp3converter-gateway",
        description="Serve the upload/download gateway with Flask's built-in server.",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("GATEWAY_HOST", "0.0.0.0"),
        help="Interface to bind (default: GATEWAY_HOST or 0.0.0.0).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("GATEWAY_PORT", "8080")),
        help="Port to listen on (default: GATEWAY_PORT or 8080).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    app = create_app()
    app.run(host=args.host, port=args.port, threaded=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

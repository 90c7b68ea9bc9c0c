"""CLI entrypoint for running the kiosk service with uvicorn."""

from __future__ import annotations

import argparse

import uvicorn


def main() -> None:
    """Run the ASGI server."""
    parser = argparse.ArgumentParser(description="NetSentinel kiosk display service")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "netsentinel.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main()

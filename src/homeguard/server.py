#!/usr/bin/env python3
"""
HomeGuard Core Server

Starts the incident API server with:
- Sensor event ingest
- Incident queries and lifecycle transitions
- Notification retry
- Audit trail

Usage:
    python -m homeguard.server
    # or
    uvicorn homeguard.api.manager:app --host 0.0.0.0 --port 8080 --reload
"""

import uvicorn
import argparse

from . import __version__
from .config import Settings, configure_logging


def main():
    parser = argparse.ArgumentParser(description="HomeGuard Core Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8080, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)

    print(f"""
HomeGuard Core v{__version__}

  API:       http://{args.host}:{args.port}/api
  Docs:      http://{args.host}:{args.port}/docs
  Channels:  {', '.join(settings.channels) or 'none'}
""")

    uvicorn.run(
        "homeguard.api.manager:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

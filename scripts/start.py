#!/usr/bin/env python3
"""
Production entrypoint.

1. Runs migrations + seed (release.py)
2. Replaces this process with gunicorn serving app.wsgi:app

Usage:
    python scripts/start.py

Environment:
    PORT                 bind port (default 8080)
    WEB_CONCURRENCY      gunicorn worker count (default 2)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _port() -> str:
    port = (os.environ.get("PORT") or "").strip() or "8080"
    try:
        port_int = int(port)
    except ValueError:
        port_int = 0
    if not 1 <= port_int <= 65535:
        print(f"ERROR: Invalid PORT value '{port}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)
    return port


def main() -> None:
    port = _port()
    workers = (os.environ.get("WEB_CONCURRENCY") or "").strip() or "2"

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers) ===", flush=True)
    # Engine is disposed after fork in create_app, so --preload is safe.
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--workers", workers,
            "--timeout", "60",
            "--preload",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()

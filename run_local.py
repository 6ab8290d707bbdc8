#!/usr/bin/env python3
"""
Local development server runner.

Runs the webhook relay API with uvicorn. Run the delivery worker
separately with `webhook-relay-worker`.

Usage:
    python run_local.py
    python run_local.py --port 8000
    python run_local.py --reload  # Auto-reload on code changes
"""

import argparse
import shutil
import sys
from pathlib import Path

import uvicorn

project_root = Path(__file__).parent


def main():
    parser = argparse.ArgumentParser(
        description="Run the webhook relay API locally with uvicorn"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="Log level for uvicorn (default: info)"
    )

    args = parser.parse_args()

    env_file = project_root / ".env"
    if not env_file.exists():
        env_example = project_root / ".env.example"
        if not env_example.exists():
            print("ERROR: no .env or .env.example found")
            print("Required environment variables:")
            print("  - EVENTS_TABLE_NAME")
            print("  - TARGETS_TABLE_NAME")
            print("  - DELIVERY_QUEUE_URL")
            sys.exit(1)
        shutil.copy(env_example, env_file)
        print("Created .env from .env.example; edit it with your configuration.")

    print(f"Webhook relay API: http://{args.host}:{args.port}")
    print(f"API Docs: http://{args.host}:{args.port}/docs")

    # Stay in project root so the .env file is picked up
    uvicorn.run(
        "webhook_relay.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        reload_dirs=[str(project_root / "src")] if args.reload else None
    )


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Launch script for Tank Level Telemetry Backend.

Usage:
    python run_server.py [--port PORT] [--host HOST] [--debug]

Examples:
    python run_server.py                    # Serve on 127.0.0.1:8000
    python run_server.py --port 5000        # Run on port 5000
    python run_server.py --debug            # Auto-reload and debug logging
"""

import argparse
import os
import sys
from pathlib import Path

# Add tanklevel to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="Tank Level Telemetry Backend Server")
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Run in debug mode"
    )

    args = parser.parse_args()

    if args.debug:
        os.environ["TANKLEVEL_LOG_LEVEL"] = "DEBUG"

    print(f"Tank Level Telemetry Backend")
    print(f"=" * 40)
    print(f"Server: http://{args.host}:{args.port}")
    print(f"Max frame length: {os.getenv('TANKLEVEL_MAX_HEX_LENGTH', '2048')} hex chars")
    print(f"=" * 40)

    print("\nAPI Endpoints:")
    print("  GET  /                          - Health check")
    print("  GET  /health                    - Detailed health")
    print("  POST /frames/decode             - Decode a hex payload")
    print("  POST /volume/infer              - One-off volume inference")
    print("  POST /ingest                    - Ingest a payload for its tank")
    print("  GET  /tanks                     - List tanks")
    print("  POST /tanks/{id}                - Create or replace a tank")
    print("  GET  /tanks/{id}                - Get tank and latest result")
    print("  POST /tanks/{id}/recalculate    - Recalculate from latest reading")
    print("  GET  /tanks/{id}/curve          - Level/volume curve")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "tanklevel.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="debug" if args.debug else "info",
    )


if __name__ == "__main__":
    main()

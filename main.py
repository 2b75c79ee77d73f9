"""
Examguard - Main Entry Point

Usage:
    python main.py                    # Start API server (default)
    python main.py --port 8001        # Start on specific port
    python main.py --log-level DEBUG  # Verbose logging

API Endpoints:
    POST   /sessions                  - Open a session for an exam attempt
    POST   /sessions/{key}/consent    - Candidate accepted the rules
    POST   /sessions/{key}/setup      - Acquire devices and start proctoring
    POST   /sessions/{key}/interventions - Proctor command
    POST   /sessions/{key}/environment   - Client fullscreen / network report
    POST   /sessions/{key}/complete   - Submit the exam
    POST   /sessions/{key}/terminate  - End the exam
    GET    /sessions/{key}            - Session status
    GET    /health                    - Health check
"""
from __future__ import annotations

import argparse


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Examguard proctoring orchestrator")
    parser.add_argument("--host", default="0.0.0.0", help="Server host")
    parser.add_argument("--port", type=int, default=None, help="Server port (default: API_PORT or 8001)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    args = parser.parse_args()

    from examguard.api.server import start_server
    from examguard.cfg import get_settings
    from examguard.utils import get_logger, setup_logging

    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)
    logger = get_logger("examguard.main")

    port = args.port or settings.api_port
    logger.info("🚀 Starting Examguard API...")
    logger.info(f"📡 Listening on http://{args.host}:{port}")

    start_server(host=args.host, port=port)


if __name__ == "__main__":
    main()

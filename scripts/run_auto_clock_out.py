"""
Run one auto clock-out sweep against the configured database.

Usage:
  python scripts/run_auto_clock_out.py
  python scripts/run_auto_clock_out.py --now 2024-05-01T18:00:00+00:00
"""

import argparse
import json
from datetime import datetime

from staffhub.db import SessionLocal
from staffhub.logging import setup_logging
from staffhub.services.auto_clock_out import run_auto_clock_out_sweep


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--now", help="ISO timestamp to sweep as of (naive means UTC)")
    args = parser.parse_args()

    setup_logging()
    now = datetime.fromisoformat(args.now) if args.now else None
    session = SessionLocal()
    try:
        stats = run_auto_clock_out_sweep(session, now=now)
    finally:
        session.close()
    print(json.dumps(stats))


if __name__ == "__main__":
    main()

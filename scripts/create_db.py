from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv(PROJECT_ROOT / ".env")


def _log(message: str) -> None:
    print(f"[LEADFLOW-DB] {message}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Create leadflow tables and seed the stage catalog.")
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run.")
    args = parser.parse_args()
    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url

    from leadflow.core.exceptions import LeadflowError
    from leadflow.core.startup import bootstrap

    try:
        seeded = bootstrap()
    except LeadflowError as exc:
        _log(f"Failed: {exc}")
        return 1
    _log(f"Schema ready; {seeded} stage rows seeded.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

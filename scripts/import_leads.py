from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv(PROJECT_ROOT / ".env")

from leadflow.core.exceptions import LeadflowError  # noqa: E402
from leadflow.core.logging_config import configure_logging  # noqa: E402
from leadflow.schemas.imports import ImportJobSnapshot  # noqa: E402
from leadflow.services.import_poller import ImportPipeline  # noqa: E402
from leadflow.services.lead_gateway import HttpLeadGateway, LocalLeadGateway  # noqa: E402


def _progress(snapshot: ImportJobSnapshot) -> None:
    print(
        f"[{snapshot.status.value}] {snapshot.processed}/{snapshot.total} "
        f"({snapshot.progress_percent}%) created={snapshot.created} failed={snapshot.failed}"
    )


async def run(args: argparse.Namespace) -> int:
    gateway = HttpLeadGateway() if args.remote else LocalLeadGateway()
    pipeline = ImportPipeline(gateway)
    path = Path(args.file)
    mapping = json.loads(args.mapping) if args.mapping else None

    try:
        report = await pipeline.run(
            path.name,
            path.read_bytes(),
            campaign_id=args.campaign_id,
            mapping=mapping,
            actor_label=args.actor_label,
            on_update=_progress,
        )
    except LeadflowError as exc:
        print(f"Import rejected: {exc}")
        for field in getattr(exc, "missing_fields", []):
            print(f"  missing mapping for: {field}")
        for issue in getattr(exc, "issues", []):
            print(f"  {issue}")
        return 1

    if report is None:
        print("Stopped before the job reported.")
        return 1
    for error in report.errors:
        print(f"  row {error.row}: {', '.join(error.issues)}")
    return 0 if report.status.value == "completed" else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import leads from a CSV or XLSX file.")
    parser.add_argument("file")
    parser.add_argument("--campaign-id", type=int, required=True)
    parser.add_argument("--mapping", help='JSON object of field -> column header, e.g. {"first_name": "Nombres"}')
    parser.add_argument("--actor-label")
    parser.add_argument("--remote", action="store_true", help="Send the file to LEAD_API_URL instead of the local store.")
    configure_logging()
    raise SystemExit(asyncio.run(run(parser.parse_args())))

#!/usr/bin/env python3
"""
Provenance report - print the provenance a consumer would see for a batch.
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from herbtrace.core import config
from herbtrace.core.errors import TraceabilityError
from herbtrace.core.service import TraceabilityService
from herbtrace.core.store import LedgerStore


def format_text(batch, recalls, verification=None):
    lines = [
        f"Batch: {batch.batch_id} ({batch.product_name})",
        f"Manufactured: {batch.manufacturing_date} by {batch.manufacturer_org}",
        f"Expires: {batch.expiry_date}",
        f"Steps: {batch.provenance_chain.total_steps}",
    ]

    for i, step in enumerate(batch.provenance_chain.steps, 1):
        lines.append(f"  {i}. {step.stage} - {step.organization} at {step.timestamp}")
        if step.latitude is not None:
            lines.append(f"     location: {step.latitude}, {step.longitude}")
        for key, value in step.details.items():
            lines.append(f"     {key}: {value}")

    if recalls:
        lines.append("RECALLED:")
        for recall in recalls:
            lines.append(f"  {recall.recall_id} ({recall.initiated_date}): {recall.reason}")

    if verification is not None:
        state = "matches" if verification["snapshot_matches"] else "DIFFERS FROM"
        lines.append(f"Snapshot {state} the live records")

    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(
        description="Print the stored provenance of a product batch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s BATCH_000001_3fa9c1d2            # Human readable report
  %(prog)s BATCH_000001_3fa9c1d2 --json     # Raw JSON
  %(prog)s BATCH_000001_3fa9c1d2 --verify   # Also compare with live records

Environment variables:
- DB_PATH=./data/herbtrace.db (ledger location)
        """
    )

    parser.add_argument(
        "batch_id",
        help="Identifier of the product batch"
    )

    parser.add_argument(
        "--db-path",
        help="Ledger database (default: DB_PATH)"
    )

    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Print JSON instead of text"
    )

    parser.add_argument(
        "--verify",
        action="store_true",
        help="Rebuild the chain from live records and compare"
    )

    args = parser.parse_args()

    db_path = args.db_path or config.DB_PATH
    if not Path(db_path).exists():
        print(f"ERROR: Ledger not found: {db_path}")
        return 1

    try:
        service = TraceabilityService(LedgerStore(db_path))
        batch = service.get_provenance(args.batch_id)
        recalls = service.list_recalls(args.batch_id)
        verification = service.verify_provenance(args.batch_id) if args.verify else None
    except TraceabilityError as e:
        print(f"ERROR: {e.kind}: {e.message}")
        return 1

    if args.json:
        report = {
            "batch": batch.to_dict(),
            "recalls": [r.to_dict() for r in recalls],
        }
        if verification is not None:
            report["verification"] = verification
        print(json.dumps(report, indent=2))
    else:
        print(format_text(batch, recalls, verification))

    return 0


if __name__ == "__main__":
    sys.exit(main())

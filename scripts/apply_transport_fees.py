#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from datetime import date, datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from chantier_charges.db import SessionLocal
from chantier_charges.errors import ApiError
from chantier_charges.logging_utils import setup_json_logging
from chantier_charges.services.overhead_distribution import distribute_overhead
from chantier_charges.services.transport_fees import apply_transport_fees
from chantier_charges.settings import get_settings
from chantier_charges.stores import build_sql_stores


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Allocate daily transport fees or overhead to job sites.")
    parser.add_argument("--job", choices=("transport", "overhead"), default="transport")
    parser.add_argument("--date", dest="fee_date", type=date.fromisoformat, default=None)
    parser.add_argument("--amount", type=float, default=None)
    parser.add_argument("--worker-id", dest="worker_id", type=int, default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    setup_json_logging(f"{settings.app_name}-{args.job}", settings.log_level)

    fee_date = args.fee_date or datetime.now(timezone.utc).date()
    with SessionLocal() as db:
        try:
            stores = build_sql_stores(db)
            if args.job == "overhead":
                result = distribute_overhead(stores, fee_date)
            else:
                result = apply_transport_fees(stores, fee_date, args.amount, worker_id=args.worker_id)
        except ApiError as exc:
            print(json.dumps({"ok": False, "code": exc.code, "message": exc.message}, ensure_ascii=False, indent=2))
            return 1

    summary = {"ok": result.failed_count == 0, **result.to_dict()}
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0 if result.failed_count == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())

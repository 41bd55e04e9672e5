#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from chantier_charges.db import SessionLocal, engine
from chantier_charges.models import OVERHEAD_FEE_KIND
from chantier_charges.services.ownership import load_personnel_assignments
from chantier_charges.services.schema_guard import verify_runtime_schema
from chantier_charges.stores import SqlChargeStore


def _expected_alembic_heads() -> list[str]:
    config = Config(str(ROOT_DIR / "alembic.ini"))
    return sorted(ScriptDirectory.from_config(config).get_heads())


def run() -> dict:
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    schema_result = verify_runtime_schema(engine)
    add(
        "runtime_schema_guard",
        "ok" if schema_result.ok else "fail",
        {"issues": schema_result.issues, "warnings": schema_result.warnings},
    )

    with SessionLocal() as db:
        expected_heads = _expected_alembic_heads()
        current_versions = [
            str(row[0]).strip()
            for row in db.execute(text("select version_num from alembic_version")).fetchall()
            if row and row[0] is not None
        ]
        missing_heads = [head for head in expected_heads if head not in current_versions]
        add(
            "alembic_head_applied",
            "fail" if missing_heads else "ok",
            {"expected_heads": expected_heads, "current_versions": current_versions},
        )

        personnel_charges = SqlChargeStore(db).list_personnel_charges()

        amount_mismatches: list[dict] = []
        billable_owners: dict[tuple[int, date], list[int]] = defaultdict(list)
        for charge in personnel_charges:
            assignments = load_personnel_assignments(charge)
            line_total = round(sum(item.total for item in assignments), 2)
            if abs(line_total - float(charge.amount or 0)) >= 0.005:
                amount_mismatches.append(
                    {"charge_id": charge.id, "amount": charge.amount, "line_total": line_total}
                )
            for assignment in assignments:
                if assignment.is_fee or assignment.worker_id is None:
                    continue
                for day in assignment.days:
                    if day.billable and day.day_date is not None:
                        billable_owners[(assignment.worker_id, day.day_date)].append(charge.id)

        add(
            "personnel_amount_matches_lines",
            "fail" if amount_mismatches else "ok",
            {"checked": len(personnel_charges), "sample": amount_mismatches[:20]},
        )

        double_billed = [
            {"worker_id": worker_id, "day_date": day_date.isoformat(), "charge_ids": sorted(set(charge_ids))}
            for (worker_id, day_date), charge_ids in sorted(billable_owners.items())
            if len(charge_ids) > 1
        ]
        add(
            "billable_pair_unique",
            "fail" if double_billed else "ok",
            {"pairs": len(billable_owners), "sample": double_billed[:20]},
        )

        duplicate_transport_fees = db.execute(
            text(
                """
                select job_site_id, payload -> 'transport_fee' ->> 'date' as fee_day, count(*)
                from charges
                where category = 'FIXED_COST'
                  and payload -> 'transport_fee' is not null
                group by job_site_id, payload -> 'transport_fee' ->> 'date'
                having count(*) > 1
                limit 20
                """
            )
        ).fetchall()
        add(
            "transport_fee_unique_per_site_day",
            "fail" if duplicate_transport_fees else "ok",
            {"rows": [list(row) for row in duplicate_transport_fees]},
        )

        duplicate_overhead = db.execute(
            text(
                """
                select job_site_id, fee_date, count(*)
                from charges
                where fee_kind = :fee_kind
                group by job_site_id, fee_date
                having count(*) > 1
                limit 20
                """
            ),
            {"fee_kind": OVERHEAD_FEE_KIND},
        ).fetchall()
        add(
            "overhead_unique_per_site_day",
            "fail" if duplicate_overhead else "ok",
            {"rows": [[row[0], str(row[1]), row[2]] for row in duplicate_overhead]},
        )

    report["ok"] = all(item["status"] == "ok" for item in report["checks"])
    return report


def main() -> int:
    report = run()
    print(json.dumps(report, ensure_ascii=False, indent=2, default=str))
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())

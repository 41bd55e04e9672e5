from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from unittest.mock import patch

from chantier_charges.errors import ValidationError
from chantier_charges.models import OVERHEAD_FEE_KIND, ChargeCategory, JobSiteStatus, OverheadConfig
from chantier_charges.schemas import CostComponent, OverheadConfigUpdate
from chantier_charges.services.overhead_distribution import (
    daily_overhead_amount,
    distribute_overhead,
    get_overhead_config,
    monthly_overhead_total,
    run_daily_overhead_distribution,
    update_overhead_config,
)
from chantier_charges.services.transport_fees import apply_transport_fees
from tests.fake_stores import (
    FakeChargeStore,
    build_fake_stores,
    make_job_site,
    make_personnel_charge,
    make_worker,
    personnel_entry,
    work_day,
)

FEE_DATE = date(2025, 3, 3)


def _overhead(**values: float) -> OverheadConfig:
    fields = {
        "financial_costs": 0.0,
        "loan": 0.0,
        "accounting": 0.0,
        "rent": 0.0,
        "general_costs": 0.0,
        "social_charges": 0.0,
    }
    fields.update(values)
    return OverheadConfig(id=1, custom=[], **fields)


class OverheadAmountTests(unittest.TestCase):
    def test_monthly_total_includes_custom_lines(self) -> None:
        config = _overhead(rent=3000.0, loan=500.0)
        config.custom = [{"label": "assurance", "amount": 100}, {"label": "bad", "amount": "x"}]

        self.assertEqual(monthly_overhead_total(config), 3600.0)
        self.assertEqual(daily_overhead_amount(config), 120.0)

    def test_empty_config_has_no_daily_amount(self) -> None:
        self.assertEqual(daily_overhead_amount(_overhead()), 0.0)


class OverheadDistributionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.charge_store = FakeChargeStore()
        self.stores = build_fake_stores(
            job_sites=[
                make_job_site(10),
                make_job_site(11),
                make_job_site(12, status=JobSiteStatus.CLOSED),
                make_job_site(13, status=JobSiteStatus.PROVISIONAL),
            ],
            charge_store=self.charge_store,
            overhead=_overhead(rent=3000.0, loan=600.0),
        )

    def test_daily_amount_is_split_across_active_sites(self) -> None:
        result = distribute_overhead(self.stores, FEE_DATE)

        self.assertEqual(result.daily_amount, 120.0)
        self.assertEqual(result.site_count, 2)
        self.assertEqual(result.share, 60.0)
        self.assertEqual(result.created_count, 2)

        charges = self.charge_store.fee_charges(OVERHEAD_FEE_KIND)
        self.assertEqual([item.job_site_id for item in charges], [10, 11])
        self.assertEqual([item.amount for item in charges], [60.0, 60.0])
        self.assertEqual(charges[0].category, ChargeCategory.FIXED_COST)
        self.assertEqual(charges[0].fee_date, FEE_DATE)
        self.assertEqual(charges[0].payload["overhead"]["monthly_total"], 3600.0)
        self.assertEqual(charges[0].payload["overhead"]["site_count"], 2)

    def test_rerun_on_same_date_skips_every_site(self) -> None:
        distribute_overhead(self.stores, FEE_DATE)
        second = distribute_overhead(self.stores, FEE_DATE)

        self.assertEqual(second.created_count, 0)
        self.assertEqual(second.skipped_count, 2)
        self.assertEqual(len(self.charge_store.fee_charges(OVERHEAD_FEE_KIND)), 2)

        next_day = distribute_overhead(self.stores, date(2025, 3, 4))
        self.assertEqual(next_day.created_count, 2)

    def test_failure_on_one_site_does_not_stop_the_run(self) -> None:
        self.charge_store.create_errors = {10: RuntimeError("disk full")}

        with self.assertLogs("chantier_charges.overhead", level="ERROR"):
            result = distribute_overhead(self.stores, FEE_DATE)

        self.assertEqual(result.created_count, 1)
        self.assertEqual(result.to_dict()["failures"], [{"job_site_id": 10, "error": "disk full"}])

    def test_no_active_sites_creates_nothing(self) -> None:
        stores = build_fake_stores(
            job_sites=[make_job_site(12, status=JobSiteStatus.CLOSED)],
            overhead=_overhead(rent=300.0),
        )
        result = distribute_overhead(stores, FEE_DATE)
        self.assertEqual((result.site_count, result.created_count), (0, 0))

    def test_zero_overhead_is_validation_error(self) -> None:
        stores = build_fake_stores(job_sites=[make_job_site(10)])
        with self.assertRaises(ValidationError):
            distribute_overhead(stores, FEE_DATE)

    def test_overhead_charge_does_not_block_transport_fee(self) -> None:
        charge_store = FakeChargeStore(
            [make_personnel_charge(1, 10, [personnel_entry(1, work_day(FEE_DATE.isoformat()))])]
        )
        stores = build_fake_stores(
            job_sites=[make_job_site(10)],
            workers=[make_worker(1, has_vehicle=True)],
            charge_store=charge_store,
            overhead=_overhead(rent=900.0),
        )

        distribute_overhead(stores, FEE_DATE)
        transport = apply_transport_fees(stores, FEE_DATE, 90)

        self.assertEqual(transport.created_count, 1)
        self.assertEqual(len(charge_store.transport_fees()), 1)
        self.assertEqual(len(charge_store.fee_charges(OVERHEAD_FEE_KIND)), 1)


class OverheadConfigTests(unittest.TestCase):
    def test_default_config_is_empty(self) -> None:
        config = get_overhead_config(build_fake_stores())
        self.assertEqual(config.monthly_total, 0.0)
        self.assertEqual(config.custom, [])

    def test_update_persists_components(self) -> None:
        stores = build_fake_stores()
        result = update_overhead_config(
            stores,
            OverheadConfigUpdate(
                rent=1500.0,
                accounting=300.0,
                custom=[CostComponent(label="logiciel", amount=60.0)],
            ),
        )

        self.assertEqual(result.monthly_total, 1860.0)
        self.assertEqual(result.daily_amount, 62.0)
        self.assertEqual(stores.overhead_config.save_calls, 1)  # type: ignore[attr-defined]
        self.assertEqual(get_overhead_config(stores).custom[0].label, "logiciel")


class DailyOverheadRunTests(unittest.TestCase):
    def test_daily_run_uses_utc_date(self) -> None:
        charge_store = FakeChargeStore()
        stores = build_fake_stores(
            job_sites=[make_job_site(10)],
            charge_store=charge_store,
            overhead=_overhead(rent=900.0),
        )

        with patch("chantier_charges.services.overhead_distribution.build_sql_stores", return_value=stores):
            result = run_daily_overhead_distribution(
                datetime(2025, 3, 3, 23, 30, tzinfo=timezone.utc),
                db=object(),  # type: ignore[arg-type]
            )

        assert result is not None
        self.assertEqual(result.fee_date, FEE_DATE)
        self.assertEqual(charge_store.fee_charges(OVERHEAD_FEE_KIND)[0].amount, 30.0)

    def test_daily_run_without_overhead_is_skipped(self) -> None:
        stores = build_fake_stores(job_sites=[make_job_site(10)])
        with patch("chantier_charges.services.overhead_distribution.build_sql_stores", return_value=stores):
            result = run_daily_overhead_distribution(datetime(2025, 3, 3, tzinfo=timezone.utc), db=object())  # type: ignore[arg-type]
        self.assertIsNone(result)


if __name__ == "__main__":
    unittest.main()

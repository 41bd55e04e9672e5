from __future__ import annotations

import unittest

from chantier_charges.errors import NotFoundError
from chantier_charges.models import Charge, ChargeCategory
from chantier_charges.services.charge_totals import summarize_site_charges
from tests.fake_stores import build_fake_stores, make_job_site, make_personnel_charge


def _charge(charge_id: int, job_site_id: int, category: ChargeCategory, amount: float) -> Charge:
    return Charge(
        id=charge_id,
        job_site_id=job_site_id,
        category=category,
        name=f"Charge {charge_id}",
        amount=amount,
        payload={},
    )


class ChargeTotalsTests(unittest.TestCase):
    def test_totals_are_grouped_by_category(self) -> None:
        stores = build_fake_stores(
            job_sites=[make_job_site(10), make_job_site(11)],
            charges=[
                _charge(1, 10, ChargeCategory.PURCHASE, 120.10),
                _charge(2, 10, ChargeCategory.PURCHASE, 79.90),
                _charge(3, 10, ChargeCategory.FIXED_COST, 90.0),
                _charge(4, 10, ChargeCategory.TEMP_LABOR, 300.0),
                make_personnel_charge(5, 10, [], amount=140.0),
                _charge(6, 11, ChargeCategory.OTHER, 999.0),
            ],
        )

        totals = summarize_site_charges(stores, 10)

        self.assertEqual(totals.job_site_id, 10)
        self.assertEqual(totals.purchase, 200.0)
        self.assertEqual(totals.fixed_cost, 90.0)
        self.assertEqual(totals.temp_labor, 300.0)
        self.assertEqual(totals.personnel, 140.0)
        self.assertEqual(totals.other, 0.0)
        self.assertEqual(totals.external_service, 0.0)
        self.assertEqual(totals.total, 730.0)

    def test_site_without_charges_is_all_zero(self) -> None:
        totals = summarize_site_charges(build_fake_stores(job_sites=[make_job_site(10)]), 10)
        self.assertEqual(totals.total, 0.0)

    def test_unknown_site_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            summarize_site_charges(build_fake_stores(), 10)


if __name__ == "__main__":
    unittest.main()

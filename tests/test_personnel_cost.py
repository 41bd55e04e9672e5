from __future__ import annotations

import unittest

from chantier_charges.schemas import PersonnelAssignment, WorkDay
from chantier_charges.services.billing_mode import BillingMode
from chantier_charges.services.personnel_cost import compute_costs, real_hours


def _day(day_date: str, start_hour: float | None = 8, end_hour: float | None = 15, *, billable: bool = True) -> WorkDay:
    return WorkDay(day_date=day_date, start_hour=start_hour, end_hour=end_hour, billable=billable)


class PersonnelCostTests(unittest.TestCase):
    def test_short_mode_single_valid_day(self) -> None:
        assignment = PersonnelAssignment(worker_id=1, hourly_rate=20.0, days=[_day("2025-03-03")])

        normalized, total = compute_costs([assignment], BillingMode.SHORT, billed_hours_per_day=7.0)

        self.assertEqual(total, 140.0)
        self.assertEqual(normalized[0].total, 140.0)
        self.assertEqual(normalized[0].real_hours, 7.0)

    def test_short_mode_bills_flat_hours_not_recorded_hours(self) -> None:
        assignment = PersonnelAssignment(
            worker_id=1,
            hourly_rate=20.0,
            days=[_day("2025-03-03", 7, 18), _day("2025-03-04", 9, 11)],
        )

        normalized, total = compute_costs([assignment], BillingMode.SHORT, billed_hours_per_day=7.0)

        self.assertEqual(total, 280.0)
        self.assertEqual(normalized[0].real_hours, 13.0)

    def test_short_mode_skips_non_billable_and_invalid_hours(self) -> None:
        assignment = PersonnelAssignment(
            worker_id=1,
            hourly_rate=25.0,
            days=[
                _day("2025-03-03", billable=False),
                _day("2025-03-04", 15, 8),
                _day("2025-03-05", None, None),
                _day("2025-03-06"),
            ],
        )

        normalized, total = compute_costs([assignment], BillingMode.SHORT, billed_hours_per_day=7.0)

        self.assertEqual(total, 175.0)
        self.assertEqual(normalized[0].real_hours, 14.0)

    def test_long_mode_bills_daily_rate_per_working_day(self) -> None:
        assignment = PersonnelAssignment(
            worker_id=1,
            hourly_rate=20.0,
            days=[
                _day("2025-03-03"),
                _day("2025-03-04", None, None),
                _day("2025-03-05", billable=False),
                _day("2025-03-08"),
            ],
        )

        normalized, total = compute_costs([assignment], BillingMode.LONG, daily_rate=200.0)

        self.assertEqual(total, 400.0)
        self.assertEqual(normalized[0].total, 400.0)
        self.assertEqual(normalized[0].real_hours, 0.0)

    def test_long_mode_uses_configured_daily_rate(self) -> None:
        assignment = PersonnelAssignment(worker_id=1, days=[_day("2025-03-03")])
        _normalized, total = compute_costs([assignment], BillingMode.LONG)
        self.assertEqual(total, 200.0)

    def test_fee_lines_are_added_unchanged(self) -> None:
        worker = PersonnelAssignment(worker_id=1, hourly_rate=20.0, days=[_day("2025-03-03")])
        fee = PersonnelAssignment(is_fee=True, label="Panier repas", total=12.5)

        normalized, total = compute_costs([worker, fee], BillingMode.SHORT, billed_hours_per_day=7.0)

        self.assertEqual(total, 152.5)
        self.assertEqual(normalized[1].total, 12.5)
        self.assertTrue(normalized[1].is_fee)

    def test_aggregate_equals_sum_of_line_totals(self) -> None:
        assignments = [
            PersonnelAssignment(worker_id=1, hourly_rate=19.37, days=[_day("2025-03-03"), _day("2025-03-04")]),
            PersonnelAssignment(worker_id=2, hourly_rate=23.11, days=[_day("2025-03-03")]),
            PersonnelAssignment(is_fee=True, label="Location", total=40.0),
        ]

        normalized, total = compute_costs(assignments, BillingMode.SHORT, billed_hours_per_day=7.0)

        self.assertAlmostEqual(total, sum(item.total for item in normalized), places=2)

    def test_stale_client_total_is_replaced(self) -> None:
        assignment = PersonnelAssignment(worker_id=1, hourly_rate=20.0, total=9999.0, days=[_day("2025-03-03", billable=False)])
        normalized, total = compute_costs([assignment], BillingMode.SHORT, billed_hours_per_day=7.0)
        self.assertEqual(normalized[0].total, 0.0)
        self.assertEqual(total, 0.0)

    def test_real_hours_sums_valid_days_only(self) -> None:
        assignment = PersonnelAssignment(
            worker_id=1,
            days=[_day("2025-03-03", 8, 12.5), _day("2025-03-04", 12, 10), _day("2025-03-05", billable=False)],
        )
        self.assertEqual(real_hours(assignment), 11.5)

    def test_worked_hours_is_zero_for_missing_or_inverted_hours(self) -> None:
        self.assertEqual(_day("2025-03-03", 8, 15).worked_hours(), 7.0)
        self.assertEqual(_day("2025-03-03", None, 15).worked_hours(), 0.0)
        self.assertEqual(_day("2025-03-03", 15, 8).worked_hours(), 0.0)
        self.assertEqual(_day("2025-03-03", 8, 8).worked_hours(), 0.0)


if __name__ == "__main__":
    unittest.main()

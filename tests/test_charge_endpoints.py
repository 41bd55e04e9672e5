from __future__ import annotations

import unittest
from datetime import date

from fastapi.testclient import TestClient

from chantier_charges.main import app
from chantier_charges.models import OVERHEAD_FEE_KIND, JobSiteStatus, TransportFeeConfig
from chantier_charges.stores import EngineStores, get_stores
from tests.fake_stores import (
    FakeChargeStore,
    build_fake_stores,
    make_job_site,
    make_personnel_charge,
    make_worker,
    personnel_entry,
    work_day,
)


def _override_get_stores(stores: EngineStores):  # type: ignore[no-untyped-def]
    def _override() -> EngineStores:
        return stores

    return _override


def _assignment_json(worker_id: int, *day_dates: str, hourly_rate: float = 20.0) -> dict:
    return {
        "worker_id": worker_id,
        "hourly_rate": hourly_rate,
        "days": [{"day_date": item, "start_hour": 8, "end_hour": 15} for item in day_dates],
    }


class ChargeEndpointsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.charge_store = FakeChargeStore()
        self.stores = build_fake_stores(
            job_sites=[
                make_job_site(10, date(2025, 3, 3), date(2025, 3, 3)),
                make_job_site(11, date(2025, 3, 1), date(2025, 3, 31)),
            ],
            workers=[make_worker(1, 20.0, has_vehicle=True)],
            charge_store=self.charge_store,
        )
        app.dependency_overrides[get_stores] = _override_get_stores(self.stores)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_price_endpoint_returns_normalized_assignments(self) -> None:
        response = self.client.post(
            "/api/personnel-charges/price",
            json={"job_site_id": 10, "assignments": [_assignment_json(1, "2025-03-03")]},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["billing_mode"], "SHORT")
        self.assertEqual(body["total_amount"], 140.0)
        self.assertTrue(body["assignments"][0]["days"][0]["billable"])
        self.assertEqual(body["assignments"][0]["real_hours"], 7.0)

    def test_price_without_job_site_is_validation_error(self) -> None:
        response = self.client.post(
            "/api/personnel-charges/price",
            json={"assignments": [_assignment_json(1, "2025-03-03")]},
            headers={"X-Request-Id": "req-123"},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")
        self.assertEqual(response.json()["error"]["request_id"], "req-123")
        self.assertEqual(response.headers["X-Request-Id"], "req-123")

    def test_malformed_body_uses_error_envelope(self) -> None:
        response = self.client.post("/api/personnel-charges/price", json={"job_site_id": 10, "assignments": []})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_unknown_site_is_not_found(self) -> None:
        response = self.client.get("/api/job-sites/404/charges")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")

    def test_create_ignores_client_amount(self) -> None:
        response = self.client.post(
            "/api/personnel-charges",
            json={"job_site_id": 10, "assignments": [_assignment_json(1, "2025-03-03")], "amount": 1.0},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["category"], "PERSONNEL")
        self.assertEqual(body["amount"], 140.0)
        self.assertEqual(body["payload"]["billing_mode"], "SHORT")

    def test_update_list_totals_and_delete(self) -> None:
        created = self.client.post(
            "/api/personnel-charges",
            json={"job_site_id": 11, "assignments": [_assignment_json(1, "2025-03-03")]},
        ).json()
        self.assertEqual(created["amount"], 200.0)

        updated = self.client.put(
            f"/api/personnel-charges/{created['id']}",
            json={"assignments": [_assignment_json(1, "2025-03-03", "2025-03-04", "2025-03-08")]},
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["amount"], 400.0)

        listed = self.client.get("/api/job-sites/11/charges")
        self.assertEqual([item["id"] for item in listed.json()], [created["id"]])

        totals = self.client.get("/api/job-sites/11/charge-totals")
        self.assertEqual(totals.status_code, 200)
        self.assertEqual(totals.json()["personnel"], 400.0)
        self.assertEqual(totals.json()["total"], 400.0)

        deleted = self.client.delete(f"/api/charges/{created['id']}")
        self.assertEqual(deleted.json(), {"ok": True, "id": created["id"]})
        self.assertEqual(self.client.delete(f"/api/charges/{created['id']}").status_code, 404)

    def test_billable_preview(self) -> None:
        self.charge_store.charges[1] = make_personnel_charge(1, 10, [personnel_entry(1, work_day("2025-03-03"))])
        self.charge_store._next_id = 2

        response = self.client.post(
            "/api/personnel-charges/billable-preview",
            json={"entries": [{"worker_id": 1, "dates": ["2025-03-04", "2025-03-03"]}]},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["items"],
            [
                {"worker_id": 1, "day_date": "2025-03-03", "billable": False},
                {"worker_id": 1, "day_date": "2025-03-04", "billable": True},
            ],
        )

    def test_store_outage_is_service_unavailable(self) -> None:
        self.charge_store.unavailable = True
        response = self.client.post(
            "/api/personnel-charges",
            json={"job_site_id": 10, "assignments": [_assignment_json(1, "2025-03-03")]},
        )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "STORE_UNAVAILABLE")


class TransportFeeEndpointsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.charge_store = FakeChargeStore(
            [make_personnel_charge(1, 10, [personnel_entry(1, work_day("2025-03-03"))])]
        )
        self.stores = build_fake_stores(
            job_sites=[make_job_site(10)],
            workers=[make_worker(1, has_vehicle=True)],
            charge_store=self.charge_store,
            config=TransportFeeConfig(id=1, truck=0.0, insurance=0.0, fuel=0.0, custom=[]),
        )
        app.dependency_overrides[get_stores] = _override_get_stores(self.stores)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_apply_is_idempotent_per_date(self) -> None:
        first = self.client.post("/api/transport-fees/apply", json={"fee_date": "2025-03-03", "amount": 90})
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["created_count"], 1)
        self.assertEqual(first.json()["amount"], 90.0)

        second = self.client.post("/api/transport-fees/apply", json={"fee_date": "2025-03-03", "amount": 90})
        self.assertEqual(second.json()["created_count"], 0)
        self.assertEqual(second.json()["skipped_count"], 1)

    def test_apply_without_any_amount_is_rejected(self) -> None:
        response = self.client.post("/api/transport-fees/apply", json={"fee_date": "2025-03-03"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_config_roundtrip_feeds_apply(self) -> None:
        saved = self.client.put(
            "/api/transport-fee-config",
            json={"truck": 50, "insurance": 15, "fuel": 20, "custom": [{"label": "peage", "amount": 5}]},
        )
        self.assertEqual(saved.status_code, 200)
        self.assertEqual(saved.json()["daily_total"], 90.0)

        self.assertEqual(self.client.get("/api/transport-fee-config").json()["daily_total"], 90.0)

        applied = self.client.post("/api/transport-fees/apply", json={"fee_date": "2025-03-03"})
        self.assertEqual(applied.json()["amount"], 90.0)
        self.assertEqual(self.charge_store.transport_fees()[0].amount, 90.0)


class OverheadEndpointsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.charge_store = FakeChargeStore()
        self.stores = build_fake_stores(
            job_sites=[make_job_site(10), make_job_site(11), make_job_site(12, status=JobSiteStatus.CLOSED)],
            charge_store=self.charge_store,
        )
        app.dependency_overrides[get_stores] = _override_get_stores(self.stores)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_distribute_without_overhead_is_rejected(self) -> None:
        response = self.client.post("/api/overhead/distribute", json={"fee_date": "2025-03-03"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_config_then_distribute_is_idempotent(self) -> None:
        saved = self.client.put("/api/overhead-config", json={"rent": 2400, "social_charges": 600})
        self.assertEqual(saved.status_code, 200)
        self.assertEqual(saved.json()["daily_amount"], 100.0)
        self.assertEqual(self.client.get("/api/overhead-config").json()["monthly_total"], 3000.0)

        first = self.client.post("/api/overhead/distribute", json={"fee_date": "2025-03-03"})
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["share"], 50.0)
        self.assertEqual(first.json()["created_count"], 2)

        second = self.client.post("/api/overhead/distribute", json={"fee_date": "2025-03-03"})
        self.assertEqual(second.json()["skipped_count"], 2)
        self.assertEqual(len(self.charge_store.fee_charges(OVERHEAD_FEE_KIND)), 2)


if __name__ == "__main__":
    unittest.main()

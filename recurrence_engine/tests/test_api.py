import os
import tempfile
import unittest
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="recurrence-api-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["RECURRENCE_MAX_PREVIEW_DAYS"] = "400"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import insert  # noqa: E402

from recurrence_engine.main import app, engine, recurrence_rules  # noqa: E402


class RecurrenceApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.client.__enter__()
        with engine.begin() as conn:
            conn.execute(recurrence_rules.delete())

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)

    def test_health(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_preview_returns_dates_and_summary(self) -> None:
        response = self.client.post(
            "/recurrences/preview",
            json={
                "frequency": 2,
                "period": 1,
                "weekdays": [5, 2],
                "start_date": "2024-01-01",
                "end_date": "2024-01-21",
            },
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["dates"], ["2024-01-01", "2024-01-04", "2024-01-15", "2024-01-18"])
        self.assertEqual(
            body["summary"],
            {"frequency": 2, "period": "week", "weekdays": ["mon", "thu"], "month_day": None},
        )

    def test_preview_applies_filter_window(self) -> None:
        response = self.client.post(
            "/recurrences/preview",
            json={
                "frequency": 1,
                "period": 2,
                "index": 31,
                "start_date": "2024-01-01",
                "end_date": "2024-04-30",
                "filter_start": "2024-02-01",
                "filter_end": "2024-03-31",
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["dates"], ["2024-02-29", "2024-03-31"])

    def test_preview_rejects_invalid_rules_and_windows(self) -> None:
        base = {"frequency": 1, "period": 0, "start_date": "2024-01-01", "end_date": "2024-01-05"}
        invalid_payloads = [
            {**base, "frequency": 0},
            {**base, "period": 7},
            {**base, "period": 1, "weekdays": [9]},
            {**base, "start_date": "2024-02-01"},
            {**base, "end_date": "2025-12-31"},
            {**base, "filter_start": "2024-01-02"},
        ]

        for payload in invalid_payloads:
            with self.subTest(payload=payload):
                response = self.client.post("/recurrences/preview", json=payload)
                self.assertEqual(response.status_code, 400)

    def test_decode_returns_rule_or_null(self) -> None:
        valid = self.client.post(
            "/recurrences/decode", json={"payload": '{"frequency": 1, "period": 2, "index": 5}'}
        )
        invalid = self.client.post("/recurrences/decode", json={"payload": "{broken"})

        self.assertEqual(
            valid.json(),
            {"rule": {"frequency": 1, "period": 2, "index": 5, "weekdays": None}},
        )
        self.assertEqual(invalid.json(), {"rule": None})

    def test_stored_rule_lifecycle(self) -> None:
        created = self.client.post(
            "/recurrences",
            json={"name": " Medication ", "frequency": 3, "period": 0},
        )
        self.assertEqual(created.status_code, 200)
        stored = created.json()
        self.assertEqual(stored["name"], "Medication")
        self.assertEqual(stored["payload"], '{"frequency":3,"period":0}')

        fetched = self.client.get(f"/recurrences/{stored['id']}")
        self.assertEqual(fetched.json()["rule"]["frequency"], 3)

        listing = self.client.get("/recurrences")
        self.assertEqual([item["id"] for item in listing.json()], [stored["id"]])

        dates = self.client.get(
            f"/recurrences/{stored['id']}/dates",
            params={"start_date": "2024-01-01", "end_date": "2024-01-10"},
        )
        self.assertEqual(dates.status_code, 200)
        self.assertEqual(
            dates.json(),
            {"rule_id": stored["id"], "dates": ["2024-01-01", "2024-01-04", "2024-01-07", "2024-01-10"]},
        )

        deleted = self.client.delete(f"/recurrences/{stored['id']}")
        self.assertEqual(deleted.json(), {"status": "deleted"})
        self.assertEqual(self.client.get(f"/recurrences/{stored['id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/recurrences/{stored['id']}").status_code, 404)

    def test_undecodable_stored_payload_is_reported(self) -> None:
        with engine.begin() as conn:
            rule_id = conn.execute(
                insert(recurrence_rules).values(name="Legacy", payload='{"frequency": 0}')
            ).inserted_primary_key[0]

        fetched = self.client.get(f"/recurrences/{rule_id}")
        dates = self.client.get(
            f"/recurrences/{rule_id}/dates",
            params={"start_date": "2024-01-01", "end_date": "2024-01-10"},
        )

        self.assertEqual(fetched.status_code, 200)
        self.assertIsNone(fetched.json()["rule"])
        self.assertEqual(dates.status_code, 422)

    def test_missing_rule_dates_returns_not_found(self) -> None:
        response = self.client.get(
            "/recurrences/999/dates",
            params={"start_date": "2024-01-01", "end_date": "2024-01-10"},
        )

        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()

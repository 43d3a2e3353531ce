from __future__ import annotations

import os
import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi import HTTPException
from psycopg import OperationalError

from api.main import (
    _resolve_request_user_id,
    create_environmental_sample,
    create_symptom_entry,
    delete_symptom_entry,
    get_latest_environment,
    get_symptom_entry,
    get_symptom_insights,
    get_symptom_stats,
    patch_symptom_entry,
)
from api.schemas import EnvironmentalSampleIn, SymptomEntryIn, SymptomEntryPatchIn
from insights.errors import FetchFailure
from tests.entry_factories import make_entry, make_sample

_AUTH = "Bearer token-value"


def _stored(entry):
    return replace(entry, id=entry.id or 41)


class AuthRequestResolutionTests(unittest.TestCase):
    def test_requires_auth_when_no_token(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            _resolve_request_user_id(explicit_user_id=None, authorization=None)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_rejects_mismatched_explicit_user_id(self) -> None:
        with patch("api.main.resolve_user_from_token", return_value={"id": 7}):
            with self.assertRaises(HTTPException) as ctx:
                _resolve_request_user_id(explicit_user_id=8, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_explicit_user_allowed_only_in_test_env(self) -> None:
        with patch.dict(os.environ, {"APP_ENV": "test"}):
            self.assertEqual(_resolve_request_user_id(explicit_user_id=5, authorization=None), 5)
        with patch.dict(os.environ, {"APP_ENV": "production"}):
            with self.assertRaises(HTTPException) as ctx:
                _resolve_request_user_id(explicit_user_id=5, authorization=None)
        self.assertEqual(ctx.exception.status_code, 401)


class CreateSymptomEntryTests(unittest.TestCase):
    def test_severity_is_derived_on_create(self) -> None:
        payload = SymptomEntryIn(wheezing=8, cough=8, attack=False, triggers=["pollen"])
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.insert_entry", side_effect=_stored) as insert_mock,
        ):
            result = create_symptom_entry(payload, authorization=_AUTH)
        insert_mock.assert_called_once()
        self.assertEqual(result["user_id"], 7)
        self.assertEqual(result["severity"], "moderate")
        self.assertFalse(result["follow_up_required"])
        self.assertEqual(result["triggers"], ["pollen"])

    def test_follow_up_entries_are_logged(self) -> None:
        payload = SymptomEntryIn(wheezing=1, cough=1, attack=True)
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.insert_entry", side_effect=_stored),
            self.assertLogs("api.main", level="INFO") as logs,
        ):
            result = create_symptom_entry(payload, authorization=_AUTH)
        self.assertEqual(result["severity"], "severe")
        self.assertTrue(any("follow-up required" in line for line in logs.output))

    def test_invalid_level_is_rejected_before_storage(self) -> None:
        payload = SymptomEntryIn(wheezing=14, cough=1, attack=False)
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.insert_entry") as insert_mock,
        ):
            with self.assertRaises(HTTPException) as ctx:
                create_symptom_entry(payload, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.detail["field"], "wheezing")
        insert_mock.assert_not_called()


class InsightEndpointTests(unittest.TestCase):
    def test_returns_serialized_report(self) -> None:
        now = datetime.now(tz=timezone.utc)
        entries = [
            make_entry(now - timedelta(hours=2), attack=True, triggers=("smoke",)),
            make_entry(now - timedelta(days=1), triggers=("smoke",)),
        ]
        samples = [make_sample(now - timedelta(hours=1), aqi=170)]
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.list_entries_since", return_value=entries) as entry_mock,
            patch("api.main.list_samples_since", return_value=samples),
        ):
            report = get_symptom_insights(days=7, lat=None, lon=None, user_id=None, authorization=_AUTH)
        self.assertEqual(entry_mock.call_args[0][0], 7)
        self.assertEqual(report["period"]["days"], 7)
        self.assertEqual(report["correlations"]["aqi"]["high_aqi_attack_percentage"], 100)
        self.assertEqual(report["recommendations"][0]["type"], "environmental")
        self.assertIsInstance(report["period"]["start"], str)

    def test_fetch_failure_maps_to_503(self) -> None:
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.list_entries_since", side_effect=FetchFailure("db down")),
            patch("api.main.list_samples_since", return_value=[]),
        ):
            with self.assertRaises(HTTPException) as ctx:
                get_symptom_insights(days=30, lat=None, lon=None, user_id=None, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 503)

    def test_invalid_window_maps_to_400(self) -> None:
        with patch("api.main.resolve_user_from_token", return_value={"id": 7}):
            with self.assertRaises(HTTPException) as ctx:
                get_symptom_insights(days=0, lat=None, lon=None, user_id=None, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_invalid_stats_period(self) -> None:
        with patch("api.main.resolve_user_from_token", return_value={"id": 7}):
            with self.assertRaises(HTTPException) as ctx:
                get_symptom_stats(period="2w", user_id=None, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 400)


class EntryMutationTests(unittest.TestCase):
    def test_patch_missing_entry_is_404(self) -> None:
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.get_entry", return_value=None),
        ):
            with self.assertRaises(HTTPException) as ctx:
                patch_symptom_entry(3, SymptomEntryPatchIn(cough=2), user_id=None, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_patch_rederives_severity(self) -> None:
        existing = replace(make_entry(datetime(2026, 1, 5, tzinfo=timezone.utc), user_id=7), id=3)
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.get_entry", return_value=existing),
            patch("api.main.update_entry", side_effect=lambda entry: entry) as update_mock,
        ):
            result = patch_symptom_entry(3, SymptomEntryPatchIn(attack=True), user_id=None, authorization=_AUTH)
        saved = update_mock.call_args[0][0]
        self.assertEqual(saved.user_id, 7)
        self.assertEqual(result["severity"], "severe")
        self.assertTrue(result["follow_up_required"])
        self.assertEqual(result["wheezing"], existing.wheezing)

    def test_delete_missing_entry_is_404(self) -> None:
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.delete_entry", return_value=False),
        ):
            with self.assertRaises(HTTPException) as ctx:
                delete_symptom_entry(9, user_id=None, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_database_errors_map_to_503_and_are_logged(self) -> None:
        existing = replace(make_entry(datetime(2026, 1, 5, tzinfo=timezone.utc), user_id=7), id=3)
        calls = (
            ("api.main.get_entry", lambda: get_symptom_entry(3, user_id=None, authorization=_AUTH)),
            (
                "api.main.update_entry",
                lambda: patch_symptom_entry(3, SymptomEntryPatchIn(cough=4), user_id=None, authorization=_AUTH),
            ),
            ("api.main.delete_entry", lambda: delete_symptom_entry(3, user_id=None, authorization=_AUTH)),
        )
        for target, call in calls:
            with self.subTest(target=target):
                with (
                    patch("api.main.resolve_user_from_token", return_value={"id": 7}),
                    patch("api.main.get_entry", return_value=existing),
                    patch(target, side_effect=OperationalError("connection lost")),
                    self.assertLogs("api.main", level="ERROR"),
                ):
                    with self.assertRaises(HTTPException) as ctx:
                        call()
                self.assertEqual(ctx.exception.status_code, 503)


class EnvironmentEndpointTests(unittest.TestCase):
    def test_sample_uses_default_location_and_computed_risk(self) -> None:
        payload = EnvironmentalSampleIn(aqi=160, pollen=3, temperature=20, humidity=50)
        env = {"DEFAULT_LAT": "40.7", "DEFAULT_LON": "-74.0", "DEFAULT_CITY": "New York"}
        with (
            patch.dict(os.environ, env),
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.insert_sample", side_effect=lambda sample: replace(sample, id=5)),
        ):
            result = create_environmental_sample(payload, authorization=_AUTH)
        self.assertEqual(result["id"], 5)
        self.assertEqual(result["risk_level"], "High")
        self.assertEqual(result["location"]["city"], "New York")
        self.assertEqual(result["location"]["lat"], 40.7)

    def test_latest_without_data_is_404(self) -> None:
        with (
            patch("api.main.resolve_user_from_token", return_value={"id": 7}),
            patch("api.main.latest_sample", return_value=None),
        ):
            with self.assertRaises(HTTPException) as ctx:
                get_latest_environment(lat=1.0, lon=2.0, authorization=_AUTH)
        self.assertEqual(ctx.exception.status_code, 404)


if __name__ == "__main__":
    unittest.main()

import datetime as dt
import unittest

from pydantic import ValidationError

from microclimate_hub.domain import (
    DateRange,
    GeoRadius,
    ReportCreate,
    ReportFilters,
    ReportUpdate,
    Severity,
    parse_report_form,
    severity_for_temperature,
)
from microclimate_hub.errors import ReportValidationError

FORM = {"temperature": 33.5, "location": {"latitude": 40.4, "longitude": -3.7}}


class TestSeverity(unittest.TestCase):
    def test_thresholds(self):
        self.assertEqual(severity_for_temperature(29.9), Severity.LOW)
        self.assertEqual(severity_for_temperature(30), Severity.MEDIUM)
        self.assertEqual(severity_for_temperature(39.9), Severity.HIGH)
        self.assertEqual(severity_for_temperature(40), Severity.EXTREME)

    def test_explicit_severity_wins(self):
        form = ReportCreate.model_validate({**FORM, "severity": "extreme"})
        self.assertEqual(form.resolved_severity(), Severity.EXTREME)
        self.assertEqual(ReportCreate.model_validate(FORM).resolved_severity(), Severity.MEDIUM)


class TestReportFilters(unittest.TestCase):
    def test_unknown_fields_are_rejected(self):
        with self.assertRaises(ValidationError):
            ReportFilters.model_validate({"severity": "high", "colour": "red"})

    def test_query_params(self):
        filters = ReportFilters(
            severity=Severity.HIGH,
            tags=["shade", "park"],
            radius=GeoRadius(lat=1.5, lng=2.5, radius_km=3),
            date_range=DateRange(start=dt.datetime(2024, 7, 1, tzinfo=dt.timezone.utc)),
        )
        self.assertEqual(filters.to_query_params(), {
            "severity": "high",
            "tags": "shade,park",
            "lat": "1.5",
            "lng": "2.5",
            "radius_km": "3.0",
            "start": "2024-07-01T00:00:00+00:00",
        })
        self.assertFalse(filters.is_empty())
        self.assertTrue(ReportFilters().is_empty())
        self.assertEqual(ReportFilters().to_query_params(), {})

    def test_inverted_date_range(self):
        with self.assertRaises(ValidationError):
            DateRange(start=dt.datetime(2024, 7, 2), end=dt.datetime(2024, 7, 1))

    def test_radius_must_be_positive(self):
        with self.assertRaises(ValidationError):
            GeoRadius(lat=0, lng=0, radius_km=0)


class TestParseReportForm(unittest.TestCase):
    def test_valid_form(self):
        report = parse_report_form({**FORM, "tags": [" shade "]})
        self.assertEqual(report.tags, ["shade"])

    def test_field_errors_are_collected(self):
        with self.assertRaises(ReportValidationError) as ctx:
            parse_report_form({"temperature": 12, "location": {"latitude": 95, "longitude": 0},
                               "tags": ["x"] * 11})
        errors = ctx.exception.errors
        self.assertIn("temperature", errors)
        self.assertIn("location.latitude", errors)
        self.assertIn("tags", errors)

    def test_blank_tag(self):
        with self.assertRaises(ReportValidationError):
            parse_report_form({**FORM, "tags": ["  "]})

    def test_update_rejects_explicit_nulls(self):
        for field in ("temperature", "description", "tags", "images", "location"):
            with self.assertRaises(ValidationError):
                ReportUpdate.model_validate({field: None})
        update = ReportUpdate.model_validate({"voice_note": None})
        self.assertEqual(update.model_dump(exclude_unset=True), {"voice_note": None})
        self.assertEqual(ReportUpdate().model_dump(exclude_unset=True), {})

    def test_model_passthrough(self):
        form = ReportCreate.model_validate(FORM)
        self.assertIs(parse_report_form(form), form)


if __name__ == "__main__":
    unittest.main()

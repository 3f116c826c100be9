import datetime as dt
import unittest

from microclimate_hub.analytics import build_heatmap, build_overview, time_range_start
from microclimate_hub.domain import Location, Report, ReportStatus, Severity

NOW = dt.datetime(2024, 7, 10, tzinfo=dt.timezone.utc)


def _report(report_id, temperature, lat, lng, *, status=ReportStatus.PENDING, severity=Severity.HIGH, user="u1"):
    return Report(id=report_id, user_id=user, temperature=temperature,
                  location=Location(latitude=lat, longitude=lng), severity=severity,
                  status=status, created_at=NOW, updated_at=NOW)


class TestTimeRanges(unittest.TestCase):
    def test_named_ranges(self):
        self.assertEqual(time_range_start("24h", NOW), NOW - dt.timedelta(hours=24))
        self.assertEqual(time_range_start("30d", NOW), NOW - dt.timedelta(days=30))
        self.assertIsNone(time_range_start("all", NOW))

    def test_unknown_range(self):
        with self.assertRaises(ValueError):
            time_range_start("1y", NOW)


class TestHeatmap(unittest.TestCase):
    def test_reports_in_one_cell_are_merged(self):
        data = build_heatmap([
            _report("a", 40.0, 40.41601, -3.70301),
            _report("b", 30.0, 40.41699, -3.70399),
            _report("c", 50.0, 41.0, 2.0),
            _report("d", 49.0, 40.416, -3.703, status=ReportStatus.REJECTED),
        ], time_range="24h")

        self.assertEqual(data.time_range, "24h")
        self.assertEqual(data.max_temperature, 50.0)
        self.assertEqual(len(data.points), 2)
        hottest, merged = data.points
        self.assertEqual(hottest.intensity, 1.0)
        self.assertEqual(hottest.reports, 1)
        self.assertEqual(merged.reports, 2)
        # mean 35 C over the 15-50 C scale
        self.assertAlmostEqual(merged.intensity, 0.571, places=3)

    def test_empty(self):
        data = build_heatmap([])
        self.assertEqual(data.points, [])
        self.assertIsNone(data.max_temperature)

    def test_cell_size_must_be_positive(self):
        with self.assertRaises(ValueError):
            build_heatmap([], cell_degrees=0)


class TestOverview(unittest.TestCase):
    def test_counts(self):
        overview = build_overview([
            _report("a", 30.0, 0, 0, severity=Severity.MEDIUM),
            _report("b", 40.0, 0, 0, severity=Severity.EXTREME, user="u2"),
            _report("c", 35.0, 0, 0, status=ReportStatus.VERIFIED),
        ])
        self.assertEqual(overview.total_reports, 3)
        self.assertEqual(overview.active_users, 2)
        self.assertEqual(overview.average_temperature, 35.0)
        self.assertEqual(overview.by_severity, {"low": 0, "medium": 1, "high": 1, "extreme": 1})
        self.assertEqual(overview.by_status, {"pending": 2, "verified": 1, "rejected": 0})

    def test_empty(self):
        overview = build_overview([])
        self.assertEqual(overview.total_reports, 0)
        self.assertIsNone(overview.average_temperature)


if __name__ == "__main__":
    unittest.main()

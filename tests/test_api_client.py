import json
import unittest

import requests

from microclimate_hub.api_client import REPORTS_TTL, ApiClient
from microclimate_hub.auth import AuthSession
from microclimate_hub.cache.memory import InMemoryRequestCache
from microclimate_hub.domain import ReportFilters, Severity, UserProfile
from microclimate_hub.errors import (
    AuthRequiredError,
    ReportValidationError,
    RequestTimeout,
    ServiceError,
    TransportError,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, raw=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        if raw is not None:
            self.content = raw
        else:
            self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        nxt = self.responses.pop(0)
        if isinstance(nxt, BaseException):
            raise nxt
        return nxt


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeAuth:
    def __init__(self, signed_in=True):
        self.session = AuthSession(
            access_token="tok",
            refresh_token=None,
            expires_at=10**12,
            user=UserProfile(id="u1", email="a@b.c"),
        ) if signed_in else None

    def get_session(self):
        return self.session

    def get_user(self, access_token):
        return self.session.user


def _report_json(report_id="r1", temperature=36.0):
    return {
        "id": report_id,
        "user_id": "u1",
        "temperature": temperature,
        "location": {"latitude": 40.0, "longitude": -3.7},
        "severity": "high",
        "status": "pending",
        "tags": [],
        "created_at": "2024-07-01T12:00:00+00:00",
        "updated_at": "2024-07-01T12:00:00+00:00",
    }


def _page_json(ids, page=1, has_next=False):
    return {"items": [_report_json(i) for i in ids], "page": page, "page_size": 10,
            "total": len(ids), "has_next": has_next}


class TestApiClientCaching(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = InMemoryRequestCache(clock=self.clock)

    def _client(self, session, auth=None):
        return ApiClient("http://api.test/v1/", self.cache, auth=auth, timeout=3, session=session)

    def test_cache_hit_skips_network(self):
        session = FakeSession(FakeResponse(200, _page_json(["a", "b"])))
        client = self._client(session)

        first = client.get_reports(page=1, limit=10)
        second = client.get_reports(page=1, limit=10)

        self.assertEqual(len(session.calls), 1)
        self.assertEqual([r.id for r in first.items], ["a", "b"])
        self.assertEqual([r.id for r in second.items], ["a", "b"])
        self.assertEqual(session.calls[0]["url"], "http://api.test/v1/reports?page=1&limit=10")
        self.assertEqual(session.calls[0]["timeout"], 3)

    def test_expired_entry_triggers_refetch(self):
        session = FakeSession(FakeResponse(200, _page_json(["a"])), FakeResponse(200, _page_json(["b"])))
        client = self._client(session)

        client.get_reports(page=1, limit=10)
        self.clock.now += REPORTS_TTL
        refreshed = client.get_reports(page=1, limit=10)

        self.assertEqual(len(session.calls), 2)
        self.assertEqual(refreshed.items[0].id, "b")

    def test_filters_are_part_of_the_cache_key(self):
        session = FakeSession(FakeResponse(200, _page_json(["a"])), FakeResponse(200, _page_json(["b"])))
        client = self._client(session)

        client.get_reports(page=1, limit=10)
        client.get_reports(ReportFilters(severity=Severity.HIGH, tags=["shade"]), page=1, limit=10)

        self.assertEqual(len(session.calls), 2)
        self.assertIn("severity=high", session.calls[1]["url"])
        self.assertIn("tags=shade", session.calls[1]["url"])

    def test_weather_is_cached_per_coordinate(self):
        session = FakeSession(FakeResponse(200, {"temperature": 31}), FakeResponse(200, {"temperature": 27}))
        client = self._client(session)

        self.assertEqual(client.get_weather(40.4, -3.7), {"temperature": 31})
        self.assertEqual(client.get_weather(40.4, -3.7), {"temperature": 31})
        self.assertEqual(client.get_weather(41.4, 2.2), {"temperature": 27})
        self.assertEqual(len(session.calls), 2)
        self.assertEqual(session.calls[0]["params"], {"lat": 40.4, "lng": -3.7})

    def test_service_failure_is_not_cached_and_propagates(self):
        session = FakeSession(
            FakeResponse(503, {"message": "down for maintenance", "code": "maintenance"}),
            FakeResponse(200, _report_json("r1")),
        )
        client = self._client(session)

        with self.assertRaises(ServiceError) as ctx:
            client.get_report("r1")
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.message, "down for maintenance")
        self.assertEqual(ctx.exception.code, "maintenance")
        self.assertIsNone(self.cache.get("report-r1"))

        self.assertEqual(client.get_report("r1").id, "r1")
        self.assertEqual(len(session.calls), 2)

    def test_service_failure_without_json_body(self):
        session = FakeSession(FakeResponse(500, None, raw=b"<html>oops</html>"))
        with self.assertRaises(ServiceError) as ctx:
            self._client(session).get_report("r1")
        self.assertEqual(ctx.exception.message, "HTTP 500")

    def test_timeout_surfaces_as_request_timeout(self):
        session = FakeSession(requests.Timeout("read timed out"))
        with self.assertRaises(RequestTimeout) as ctx:
            self._client(session).get_report("r1")
        self.assertEqual(ctx.exception.status, 0)
        self.assertIsNone(self.cache.get("report-r1"))

    def test_connection_error_surfaces_as_transport_error(self):
        session = FakeSession(requests.ConnectionError("refused"))
        with self.assertRaises(TransportError):
            self._client(session).health_check()


class TestApiClientWrites(unittest.TestCase):
    def setUp(self):
        self.cache = InMemoryRequestCache(clock=FakeClock())

    def test_create_report_requires_session(self):
        session = FakeSession()
        client = ApiClient("http://api.test/v1", self.cache, auth=FakeAuth(signed_in=False), session=session)
        form = {"temperature": 36, "location": {"latitude": 1, "longitude": 2}}
        with self.assertRaises(AuthRequiredError):
            client.create_report(form)
        self.assertEqual(session.calls, [])

    def test_create_report_validation_never_reaches_network(self):
        session = FakeSession()
        client = ApiClient("http://api.test/v1", self.cache, auth=FakeAuth(), session=session)
        with self.assertRaises(ReportValidationError) as ctx:
            client.create_report({"temperature": 80, "location": {"latitude": 1, "longitude": 2}, "bogus": 1})
        self.assertIn("temperature", ctx.exception.errors)
        self.assertIn("bogus", ctx.exception.errors)
        self.assertEqual(session.calls, [])

    def test_create_report_invalidates_report_lists(self):
        self.cache.set("reports-page=1&limit=10", {"items": []}, ttl=60)
        self.cache.set("report-r0", {"id": "r0"}, ttl=60)
        session = FakeSession(FakeResponse(201, _report_json("r1")))
        client = ApiClient("http://api.test/v1", self.cache, auth=FakeAuth(), session=session)

        report = client.create_report({"temperature": 36, "location": {"latitude": 1, "longitude": 2},
                                       "tags": ["park"]})

        self.assertEqual(report.id, "r1")
        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(call["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(call["json"]["tags"], ["park"])
        self.assertIsNone(self.cache.get("reports-page=1&limit=10"))
        self.assertEqual(self.cache.get("report-r0"), {"id": "r0"})

    def test_update_and_delete_invalidate_item_and_lists(self):
        self.cache.set("reports-page=1&limit=10", {"items": []}, ttl=60)
        self.cache.set("report-r1", {"id": "r1"}, ttl=60)
        self.cache.set("report-r2", {"id": "r2"}, ttl=60)
        session = FakeSession(FakeResponse(200, _report_json("r1")), FakeResponse(204))
        client = ApiClient("http://api.test/v1", self.cache, auth=FakeAuth(), session=session)

        client.update_report("r1", {"description": "shade is gone"})
        self.assertEqual(session.calls[0]["json"], {"description": "shade is gone"})
        self.assertIsNone(self.cache.get("report-r1"))
        self.assertIsNone(self.cache.get("reports-page=1&limit=10"))

        self.cache.set("report-r1", {"id": "r1"}, ttl=60)
        client.delete_report("r1")
        self.assertEqual(session.calls[1]["method"], "DELETE")
        self.assertIsNone(self.cache.get("report-r1"))
        self.assertEqual(self.cache.get("report-r2"), {"id": "r2"})

    def test_user_scoped_reads_do_not_outlive_the_session(self):
        auth = FakeAuth()
        session = FakeSession(
            FakeResponse(200, {"id": "u1", "email": "a@b.c"}),
            FakeResponse(200, {"id": "u2", "email": "z@y.x"}),
        )
        client = ApiClient("http://api.test/v1", self.cache, auth=auth, session=session)

        self.assertEqual(client.get_current_user().id, "u1")
        self.assertEqual(client.get_current_user().id, "u1")
        self.assertEqual(len(session.calls), 1)

        auth.session = None
        with self.assertRaises(AuthRequiredError):
            client.get_current_user()
        self.assertEqual(len(session.calls), 1)

        auth.session = AuthSession(access_token="tok-2", refresh_token=None, expires_at=10**12,
                                   user=UserProfile(id="u2", email="z@y.x"))
        self.assertEqual(client.get_current_user().id, "u2")
        self.assertEqual(len(session.calls), 2)

        self.assertIsNotNone(self.cache.get("current-user@u1"))
        client.clear_cache("current-user")
        self.assertIsNone(self.cache.get("current-user@u1"))
        self.assertIsNone(self.cache.get("current-user@u2"))

    def test_notification_writes_invalidate_notifications(self):
        self.cache.set("notifications", [], ttl=60)
        session = FakeSession(FakeResponse(204))
        client = ApiClient("http://api.test/v1", self.cache, auth=FakeAuth(), session=session)
        client.mark_notification_read("n1")
        self.assertIsNone(self.cache.get("notifications"))
        self.assertTrue(session.calls[0]["url"].endswith("/notifications/n1/read"))


if __name__ == "__main__":
    unittest.main()

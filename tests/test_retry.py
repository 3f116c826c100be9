import unittest

from microclimate_hub.errors import RequestTimeout, ServiceError
from microclimate_hub.retry import is_retryable_error, retry_with_backoff


class Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TestRetryWithBackoff(unittest.TestCase):
    def test_transient_failures_are_retried(self):
        fn = Flaky(RequestTimeout(), ServiceError(503, "unavailable"), "ok")
        self.assertEqual(retry_with_backoff(fn, max_retries=3, base_delay=0), "ok")
        self.assertEqual(fn.calls, 3)

    def test_last_error_is_reraised_when_attempts_run_out(self):
        fn = Flaky(ServiceError(500, "a"), ServiceError(502, "b"))
        with self.assertRaises(ServiceError) as ctx:
            retry_with_backoff(fn, max_retries=2, base_delay=0)
        self.assertEqual(ctx.exception.status, 502)
        self.assertEqual(fn.calls, 2)

    def test_client_errors_are_not_retried(self):
        fn = Flaky(ServiceError(404, "missing"), "never")
        with self.assertRaises(ServiceError):
            retry_with_backoff(fn, base_delay=0)
        self.assertEqual(fn.calls, 1)

    def test_custom_predicate(self):
        fn = Flaky(KeyError("x"), 42)
        self.assertEqual(retry_with_backoff(fn, base_delay=0, retry_on=lambda e: isinstance(e, KeyError)), 42)

    def test_is_retryable_error(self):
        self.assertTrue(is_retryable_error(RequestTimeout()))
        self.assertTrue(is_retryable_error(ServiceError(500, "x")))
        self.assertFalse(is_retryable_error(ServiceError(422, "x")))
        self.assertFalse(is_retryable_error(ValueError("x")))


if __name__ == "__main__":
    unittest.main()

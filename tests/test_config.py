import os
import unittest

from microclimate_hub.config import Settings


class TestConfig(unittest.TestCase):
    def test_settings_defaults(self):
        previous = os.environ.pop("MICROCLIMATE_API_BASE_URL", None)
        try:
            s = Settings()
            self.assertEqual(s.api_base_url, "http://localhost:8000/v1")
            self.assertEqual(s.api_timeout_seconds, 10.0)
            self.assertEqual(s.page_size, 10)
            self.assertEqual(s.storage_namespace, "microclimate-hub-storage")
        finally:
            if previous is not None:
                os.environ["MICROCLIMATE_API_BASE_URL"] = previous

    def test_settings_env_override_strips_trailing_slash(self):
        previous = os.environ.get("MICROCLIMATE_API_BASE_URL")
        try:
            os.environ["MICROCLIMATE_API_BASE_URL"] = "https://heat.example.org/v1/"
            s = Settings()
            self.assertEqual(s.api_base_url, "https://heat.example.org/v1")
        finally:
            if previous is None:
                os.environ.pop("MICROCLIMATE_API_BASE_URL", None)
            else:
                os.environ["MICROCLIMATE_API_BASE_URL"] = previous

    def test_page_size_override(self):
        previous = os.environ.get("MICROCLIMATE_PAGE_SIZE")
        try:
            os.environ["MICROCLIMATE_PAGE_SIZE"] = "25"
            s = Settings()
            self.assertEqual(s.page_size, 25)
        finally:
            if previous is None:
                os.environ.pop("MICROCLIMATE_PAGE_SIZE", None)
            else:
                os.environ["MICROCLIMATE_PAGE_SIZE"] = previous


if __name__ == "__main__":
    unittest.main()

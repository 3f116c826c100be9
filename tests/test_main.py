import unittest

from microclimate_hub.main import app


class TestMain(unittest.TestCase):
    def test_app_metadata(self):
        self.assertEqual(app.title, "Microclimate Hub")
        paths = {route.path for route in app.routes}
        self.assertIn("/v1/reports", paths)
        self.assertIn("/v1/health", paths)


if __name__ == "__main__":
    unittest.main()

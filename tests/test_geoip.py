import os
import tempfile
import unittest

from tor_geopath.geoip import CachingCountryResolver, StaticCountryResolver, unresolved_country


class TestStaticCountryResolver(unittest.TestCase):
    def test_lookup(self):
        resolver = StaticCountryResolver({"1.2.3.4": "us"})
        self.assertEqual(resolver("1.2.3.4"), "US")
        self.assertEqual(resolver("5.6.7.8"), "XX")
        self.assertEqual(len(resolver), 1)

    def test_from_csv(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "geoip.csv")
            with open(path, "w") as f:
                f.write("ip,country\n1.2.3.4,DE\n 5.6.7.8 ,fr\n9.9.9.9,\n")
            resolver = StaticCountryResolver.from_csv(path)

        self.assertEqual(resolver("1.2.3.4"), "DE")
        self.assertEqual(resolver("5.6.7.8"), "FR")
        self.assertEqual(resolver("9.9.9.9"), "XX")

    def test_from_csv_missing_columns(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "geoip.csv")
            with open(path, "w") as f:
                f.write("address,cc\n1.2.3.4,DE\n")
            with self.assertRaises(ValueError):
                StaticCountryResolver.from_csv(path)


class TestCachingCountryResolver(unittest.TestCase):
    def test_caches_answers(self):
        calls = []

        def slow(ip):
            calls.append(ip)
            return "NL"

        resolver = CachingCountryResolver(slow)
        self.assertEqual(resolver("1.1.1.1"), "NL")
        self.assertEqual(resolver("1.1.1.1"), "NL")
        self.assertEqual(resolver("2.2.2.2"), "NL")
        self.assertEqual(calls, ["1.1.1.1", "2.2.2.2"])
        self.assertEqual(resolver.cache_info(), {"hits": 1, "misses": 2, "size": 2})

    def test_failures_are_cached_too(self):
        calls = []

        def failing(ip):
            calls.append(ip)
            return None

        resolver = CachingCountryResolver(failing)
        self.assertEqual(resolver("1.1.1.1"), "XX")
        self.assertEqual(resolver("1.1.1.1"), "XX")
        self.assertEqual(len(calls), 1)

    def test_empty_address(self):
        resolver = CachingCountryResolver(lambda ip: self.fail("resolver called"))
        self.assertEqual(resolver(""), "XX")

    def test_clear(self):
        resolver = CachingCountryResolver(unresolved_country)
        resolver("1.1.1.1")
        resolver.clear()
        self.assertEqual(resolver.cache_info(), {"hits": 0, "misses": 0, "size": 0})


if __name__ == '__main__':
    unittest.main()

import unittest

from tickertape.errors import FormatError
from tickertape.ingestion.url_utils import identity_hash, normalize_url


class TestUrlCanonicalization(unittest.TestCase):
    def test_encoded_query_delimiter_folds_into_query(self):
        raw = "https://kabutan.jp/news/marketnews/%3Fb=n202504290001"
        self.assertEqual(normalize_url(raw), "https://kabutan.jp/news/marketnews/?b=n202504290001")

    def test_literal_and_encoded_query_share_canonical_form(self):
        a = "https://kabutan.jp/news/marketnews/%3Fb=1&page=2"
        b = "https://kabutan.jp/news/marketnews/?b=1&page=2"
        self.assertEqual(normalize_url(a), normalize_url(b))

    def test_query_appended_only_when_present(self):
        self.assertEqual(normalize_url("https://example.com/a/b"), "https://example.com/a/b")
        self.assertEqual(normalize_url("https://example.com/a/b?"), "https://example.com/a/b")

    def test_decodes_percent_encoded_path(self):
        raw = "https://example.com/%E3%83%8B%E3%83%A5%E3%83%BC%E3%82%B9/item"
        self.assertEqual(normalize_url(raw), "https://example.com/ニュース/item")

    def test_drops_fragment_and_userinfo(self):
        self.assertEqual(normalize_url("https://user:pw@example.com/a?x=1#top"), "https://example.com/a?x=1")

    def test_idempotent(self):
        samples = [
            "https://kabutan.jp/news/marketnews/%3Fb=1&page=2",
            "https://kabutan.jp/news/?b=k202504290001",
            "https://example.com/a%3Fx=1?y=2",
            "https://example.com/%2541/b",
            "https://example.com/a%23b",
            "HTTPS://Example.com:8443/p%20q?z=%20",
            "https://example.com/100%/done",
        ]
        for raw in samples:
            once = normalize_url(raw)
            self.assertEqual(normalize_url(once), once, raw)

    def test_rejects_unparseable_or_relative(self):
        for bad in ["", "   ", "not a url", "/news/marketnews/", "http://[::1", "https://example.com:notaport/"]:
            with self.assertRaises(FormatError, msg=bad):
                normalize_url(bad)


class TestIdentityHash(unittest.TestCase):
    def test_deterministic(self):
        args = ("決算速報", "https://kabutan.jp/news/?b=1", "https://kabutan.jp/news/?b=1")
        self.assertEqual(identity_hash(*args), identity_hash(*args))
        self.assertEqual(len(identity_hash(*args)), 64)

    def test_each_component_changes_hash(self):
        base = identity_hash("title", "https://x.test/a%3Fq=1", "https://x.test/a?q=1")
        self.assertNotEqual(base, identity_hash("title2", "https://x.test/a%3Fq=1", "https://x.test/a?q=1"))
        self.assertNotEqual(base, identity_hash("title", "https://x.test/a?q=1", "https://x.test/a?q=1"))
        self.assertNotEqual(base, identity_hash("title", "https://x.test/a%3Fq=1", "https://x.test/a?q=2"))

    def test_same_canonical_different_raw_differs(self):
        a = "https://kabutan.jp/news/marketnews/%3Fb=1&page=2"
        b = "https://kabutan.jp/news/marketnews/?b=1&page=2"
        canon = normalize_url(a)
        self.assertNotEqual(identity_hash("t", a, canon), identity_hash("t", b, canon))


if __name__ == "__main__":
    unittest.main()

from listing_walker.utils import (
    dedupe_by_identity,
    extract_resource_id,
    first_success,
    is_http_url,
    normalize_url,
    same_resource,
)


class TestNormalizeUrl:
    def test_root_relative_href_uses_site_base(self):
        assert normalize_url("/ilan/daire-1134567890/detay") == \
            "https://www.sahibinden.com/ilan/daire-1134567890/detay"

    def test_bare_relative_href_is_rooted(self):
        assert normalize_url("ilan/daire-1134567890/detay") == \
            "https://www.sahibinden.com/ilan/daire-1134567890/detay"

    def test_protocol_relative_href(self):
        assert normalize_url("//www.sahibinden.com/ilan/x-1234567") == \
            "https://www.sahibinden.com/ilan/x-1234567"

    def test_strips_fragment_tracking_params_and_trailing_slash(self):
        url = "HTTPS://WWW.Sahibinden.com/ilan/x-1234567/detay/?utm_source=a&gclid=b&pagingOffset=20#photos"
        assert normalize_url(url) == "https://www.sahibinden.com/ilan/x-1234567/detay?pagingOffset=20"

    def test_unusable_hrefs(self):
        for href in (None, "", "   ", "#", "javascript:void(0)", "mailto:a@b.c", "tel:0532"):
            assert normalize_url(href) is None

    def test_relative_to_other_base(self):
        assert normalize_url("/a/b", base="https://example.com/x/y") == "https://example.com/a/b"


class TestResourceIdentity:
    def test_numeric_id_preferred(self):
        assert extract_resource_id("https://www.sahibinden.com/ilan/daire-1134567890/detay") == "1134567890"

    def test_path_identity_without_numeric_id(self):
        assert extract_resource_id("https://www.sahibinden.com/satilik-daire/istanbul?pagingOffset=20") == \
            "www.sahibinden.com/satilik-daire/istanbul"

    def test_empty(self):
        assert extract_resource_id(None) is None
        assert extract_resource_id("") is None

    def test_same_resource_ignores_canonicalization_differences(self):
        assert same_resource(
            "https://www.sahibinden.com/ilan/daire-1134567890/detay?from=list#top",
            "https://m.sahibinden.com/ilan/emlak-daire-1134567890",
        )

    def test_different_resources(self):
        assert not same_resource(
            "https://www.sahibinden.com/ilan/daire-1134567890/detay",
            "https://www.sahibinden.com/ilan/daire-1134567891/detay",
        )
        assert not same_resource(None, "https://www.sahibinden.com/x")

    def test_dedupe_by_identity_keeps_order_and_skips_existing(self):
        urls = [
            "https://www.sahibinden.com/ilan/a-1000001/detay",
            "https://www.sahibinden.com/ilan/b-1000002/detay",
            "https://www.sahibinden.com/ilan/a-again-1000001",
            "https://www.sahibinden.com/ilan/c-1000003/detay",
        ]
        existing = ["https://www.sahibinden.com/ilan/c-1000003"]
        assert dedupe_by_identity(urls, existing) == urls[:2]


class TestFirstSuccess:
    def test_first_non_empty_wins(self):
        strategy, result = first_success(["a", "b", "c"], lambda s: {"a": [], "b": [1], "c": [2]}[s])
        assert strategy == "b"
        assert result == [1]

    def test_raising_strategy_is_a_miss(self):
        def attempt(s):
            if s == "bad":
                raise ValueError("boom")
            return s.upper()

        assert first_success(["bad", "ok"], attempt) == ("ok", "OK")

    def test_default_when_nothing_matches(self):
        assert first_success([None, "x"], lambda s: None, default=[]) == (None, [])


def test_is_http_url():
    assert is_http_url("https://www.sahibinden.com/x")
    assert not is_http_url("ftp://example.com")
    assert not is_http_url("/relative")

import pytest

from waper.crawler.filter import CrawlFilter, PatternSet
from waper.utils.config import ConfigError


URLS = [
    "https://example.com/",
    "https://example.com/private/page",
    "https://www.example.com/blog?page=2",
    "http://other.com/x",
    "https://EXAMPLE.com/upper",
]


@pytest.mark.parametrize("url", URLS)
def test_is_match_is_whitelist_and_not_blacklist(url):
    whitelist = [r".*example\.com.*", r"other\.com/y"]
    blacklist = [r"/private/", r"\?page="]
    crawl_filter = CrawlFilter(whitelist=tuple(whitelist), blacklist=tuple(blacklist))

    expected = (
        any(PatternSet([p]).is_match(url) for p in whitelist)
        and not any(PatternSet([p]).is_match(url) for p in blacklist)
    )
    assert crawl_filter.is_match(url) == expected


def test_blacklist_wins_on_overlap():
    crawl_filter = CrawlFilter(whitelist=(r"example\.com",), blacklist=(r"example\.com/admin",))

    assert crawl_filter.is_match("https://example.com/docs")
    assert not crawl_filter.is_match("https://example.com/admin/users")


def test_patterns_are_searched_unanchored():
    crawl_filter = CrawlFilter(whitelist=("example",))
    assert crawl_filter.is_match("https://www.example.org/path")


def test_empty_whitelist_matches_nothing():
    crawl_filter = CrawlFilter(whitelist=())
    assert not crawl_filter.is_match("https://example.com/")


def test_default_filter_allows_everything():
    assert CrawlFilter().is_match("https://anything.test/at/all")


def test_invalid_pattern_raises_config_error():
    with pytest.raises(ConfigError, match=r"\(unclosed"):
        CrawlFilter(whitelist=("(unclosed",))


def test_inline_global_flags_are_supported():
    patterns = PatternSet(["(?i)EXAMPLE", "other"])
    assert patterns.is_match("https://example.com/")
    assert patterns.is_match("https://other.org/")
    assert not patterns.is_match("https://third.net/")


def test_blacklist_all_blocks_everything():
    crawl_filter = CrawlFilter(whitelist=(".*",)).blacklist_all()
    assert crawl_filter.blacklist == (".*",)
    assert not crawl_filter.is_match("https://example.com/")


def test_helpers_return_new_filters():
    original = CrawlFilter(whitelist=("a",), blacklist=("b",))

    changed = original.with_whitelist(["c"]).with_blacklist([])

    assert changed.whitelist == ("c",)
    assert changed.blacklist == ()
    assert original.whitelist == ("a",)
    assert original.blacklist == ("b",)


def test_filters_compare_by_patterns():
    assert CrawlFilter(whitelist=["a"], blacklist=["b"]) == CrawlFilter(whitelist=("a",), blacklist=("b",))


def test_backreferences_keep_their_own_groups():
    patterns = PatternSet([r"(x)\1", r"(y)\1"])

    assert patterns.is_match("https://example.com/yy")
    assert patterns.is_match("https://example.com/xx")
    assert not patterns.is_match("https://example.com/xy")


def test_inline_flag_applies_only_to_its_own_pattern():
    patterns = PatternSet(["example", "(?i)OTHER"])

    assert patterns.is_match("https://other.org/")
    assert not patterns.is_match("https://EXAMPLE.com/")


@pytest.mark.parametrize("url", URLS + ["https://example.com/aa/bb"])
def test_grouped_patterns_match_like_any_single_pattern(url):
    whitelist = [r"(a)/\1", r"(?P<host>example)\.com/(b)\2", r"other"]
    expected = any(PatternSet([p]).is_match(url) for p in whitelist)

    assert PatternSet(whitelist).is_match(url) == expected

"""Unit tests for the Markdown parsing helpers."""

import pytest

from config.patterns import patterns
from src.scraper.parsers import (
    clean_title,
    extract_post_id_from_url,
    extract_submolt_from_url,
    extract_username_from_url,
    is_plausible_title,
    is_valid_submolt_name,
    is_valid_username,
    nearest_match,
    normalize_name,
    parse_number,
    strip_markdown,
    synthesize_post_id,
)


class TestParseNumber:
    """Tests for parse_number function."""

    def test_simple_number(self):
        assert parse_number("123") == 123

    def test_with_suffix_k(self):
        assert parse_number("1.2K") == 1200
        assert parse_number("1.2k") == 1200

    def test_with_suffix_m(self):
        assert parse_number("1.5M") == 1500000

    def test_thousands_separator(self):
        assert parse_number("1,234") == 1234

    def test_with_word_members(self):
        assert parse_number("356 members") == 356

    def test_with_word_comments(self):
        assert parse_number("7 comments") == 7

    def test_negative_clamped(self):
        assert parse_number("-5") == 0

    def test_empty_string(self):
        assert parse_number("") == 0
        assert parse_number(None) == 0

    def test_invalid_string(self):
        assert parse_number("abc") == 0


class TestExtractFromUrl:
    """Tests for URL extraction functions."""

    def test_extract_username_simple(self):
        assert extract_username_from_url("/u/test_user") == "test_user"

    def test_extract_username_full_url(self):
        url = "https://www.moltbook.com/u/agent123"
        assert extract_username_from_url(url) == "agent123"

    def test_extract_username_with_query(self):
        assert extract_username_from_url("/u/user?tab=posts") == "user"

    def test_extract_username_invalid(self):
        assert extract_username_from_url("/m/submolt") is None

    def test_extract_submolt_simple(self):
        assert extract_submolt_from_url("/m/general") == "general"

    def test_extract_submolt_full_url(self):
        url = "https://www.moltbook.com/m/agents"
        assert extract_submolt_from_url(url) == "agents"

    def test_extract_post_id(self):
        assert extract_post_id_from_url("https://www.moltbook.com/post/abc-123") == "abc-123"
        assert extract_post_id_from_url("/p/xyz") == "xyz"

    def test_extract_post_id_missing(self):
        assert extract_post_id_from_url("https://www.moltbook.com/m/agentops") is None
        assert extract_post_id_from_url(None) is None


class TestNames:
    """Tests for name normalization and validation."""

    def test_normalize_name(self):
        assert normalize_name("  @Deep_Thinker ") == "deep_thinker"
        assert normalize_name("") is None
        assert normalize_name(None) is None

    @pytest.mark.parametrize("name", ["researcher_bot", "Deep_Thinker", "agent-7", "ab"])
    def test_valid_usernames(self, name):
        assert is_valid_username(name)

    @pytest.mark.parametrize("name", ["the", "a", "x", "bad name", "x" * 41, "", None])
    def test_invalid_usernames(self, name):
        assert not is_valid_username(name)

    def test_submolt_names(self):
        assert is_valid_submolt_name("agentops")
        assert not is_valid_submolt_name("a")
        assert not is_valid_submolt_name("no spaces")


class TestTitles:
    """Tests for title cleanup."""

    def test_strip_markdown(self):
        text = "# **Hello** [world](http://x.test) ![img](y.png)"
        assert strip_markdown(text) == "Hello world"

    def test_clean_title_strips_card_artifacts(self):
        text = "▲ 42 ▼ m/agentops • u/bot 3h ago Great title 💬 7"
        assert clean_title(text) == "Great title"

    def test_clean_title_empty(self):
        assert clean_title("") is None
        assert clean_title("▲ 42 ▼") is None

    def test_plausible_title(self):
        assert is_plausible_title("Great idea for agent memory")
        assert not is_plausible_title("ab")
        assert not is_plausible_title("- list item")
        assert not is_plausible_title("42")
        assert not is_plausible_title("u/researcher_bot")
        assert not is_plausible_title(None)

    def test_synthesize_post_id_stable(self):
        first = synthesize_post_id("Title", "Agent")
        second = synthesize_post_id("title", "agent")
        assert first == second
        assert first.startswith("synth-")

    def test_synthesize_post_id_distinct(self):
        assert synthesize_post_id("One") != synthesize_post_id("Two")


class TestNearestMatch:
    """Tests for nearest_match."""

    def test_prefers_closest_match(self):
        text = "u/alpha filler text TARGET u/beta"
        start = text.index("TARGET")
        match = nearest_match(patterns.agent.mention, text, start, start + len("TARGET"))
        assert match.group("username") == "beta"

    def test_falls_back_to_match_before(self):
        text = "u/alpha TARGET nothing after"
        start = text.index("TARGET")
        match = nearest_match(patterns.agent.mention, text, start, start + len("TARGET"))
        assert match.group("username") == "alpha"

    def test_no_match(self):
        text = "plain TARGET text"
        start = text.index("TARGET")
        assert nearest_match(patterns.agent.mention, text, start, start + 6) is None

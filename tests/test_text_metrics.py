"""Unit tests for the text metrics calculator."""

from src.processing.text_metrics import TextMetrics, combine_post_text, compute_text_metrics


class TestComputeTextMetrics:
    """Tests for compute_text_metrics."""

    def test_empty_text(self):
        assert compute_text_metrics("") == TextMetrics(0, 0, 0, 0.0, 0)

    def test_none_text(self):
        assert compute_text_metrics(None) == TextMetrics()

    def test_whitespace_only(self):
        metrics = compute_text_metrics("   \n\t ")
        assert metrics.word_count == 0
        assert metrics.unique_words == 0
        assert metrics.avg_word_length == 0.0

    def test_reference_sentence(self):
        """Only purely alphabetic tokens count as unique words."""
        text = "The quick brown fox jumps over 1 lazy dog http://example.com"
        metrics = compute_text_metrics(text)

        assert metrics.word_count == 10
        assert metrics.link_count == 1
        assert metrics.char_count == len(text)
        # the, quick, brown, fox, jumps, over, lazy, dog
        assert metrics.unique_words == 8

    def test_unique_words_case_folded(self):
        metrics = compute_text_metrics("Agent agent AGENT memory")
        assert metrics.unique_words == 2

    def test_punctuated_tokens_not_unique_words(self):
        metrics = compute_text_metrics("hello, world")
        assert metrics.word_count == 2
        assert metrics.unique_words == 1

    def test_avg_word_length_rounded(self):
        metrics = compute_text_metrics("ab abc abcd")
        assert metrics.avg_word_length == 3.0

        metrics = compute_text_metrics("a ab ab")
        assert metrics.avg_word_length == 1.67

    def test_multiple_links(self):
        metrics = compute_text_metrics("see https://a.test/x and http://b.test")
        assert metrics.link_count == 2

    def test_deterministic(self):
        text = "Persistent memory makes agents more consistent."
        assert compute_text_metrics(text) == compute_text_metrics(text)

    def test_to_dict(self):
        data = compute_text_metrics("one two").to_dict()
        assert data == {
            "word_count": 2,
            "char_count": 7,
            "unique_words": 2,
            "avg_word_length": 3.0,
            "link_count": 0,
        }


class TestCombinePostText:
    """Tests for combine_post_text."""

    def test_title_and_content(self):
        assert combine_post_text("Title", "Body text") == "Title Body text"

    def test_missing_content(self):
        assert combine_post_text("Title", None) == "Title"

"""Tests for formatting utilities"""
import pytest
from qa_dashboard.utils.formatters import safe_json_extract, text_to_adf


class TestSafeJsonExtract:
    """Tests for safe_json_extract function"""

    def test_extract_plain_json(self):
        """Test extracting plain JSON"""
        assert safe_json_extract('{"key": "value"}') == {"key": "value"}

    def test_extract_json_with_markdown(self):
        """Test extracting JSON wrapped in markdown code blocks"""
        text = '```json\n{"key": "value"}\n```'
        assert safe_json_extract(text) == {"key": "value"}

    def test_extract_array(self):
        assert safe_json_extract('[{"title": "a"}]') == [{"title": "a"}]

    def test_extract_json_embedded_in_text(self):
        """Test extracting JSON surrounded by prose"""
        text = 'Here you go: {"items": [1, 2]} hope it helps'
        assert safe_json_extract(text) == {"items": [1, 2]}

    @pytest.mark.parametrize("text", ["", None, "no json here", "{not json}"])
    def test_invalid_returns_none(self, text):
        assert safe_json_extract(text) is None


class TestTextToAdf:
    """Tests for text_to_adf function"""

    def test_single_paragraph(self):
        doc = text_to_adf("Hello")

        assert doc["type"] == "doc"
        assert doc["version"] == 1
        assert doc["content"] == [
            {"type": "paragraph", "content": [{"type": "text", "text": "Hello"}]}
        ]

    def test_blank_lines_split_paragraphs(self):
        doc = text_to_adf("First\n\nSecond")

        assert len(doc["content"]) == 2
        assert doc["content"][1]["content"][0]["text"] == "Second"

    def test_single_newlines_become_hard_breaks(self):
        doc = text_to_adf("Steps:\n1. Open\n2. Submit")
        content = doc["content"][0]["content"]

        assert [node["type"] for node in content] == [
            "text", "hardBreak", "text", "hardBreak", "text",
        ]

    def test_empty_text(self):
        assert text_to_adf("")["content"] == []

"""Tests for the extraction coordinator."""
from unittest.mock import MagicMock, patch

import pytest

from treasure_trove import extraction, fallback
from treasure_trove.config import Config
from treasure_trove.errors import MalformedError, UnreachableError
from treasure_trove.llm import ModelExtractor
from treasure_trove.models import CandidateItem, Confidence


def _pairs(items):
    return [(item.name, item.quantity) for item in items]


class _StubExtractor:
    """Extractor returning a fixed result or raising a fixed error."""

    def __init__(self, result=None, error=None):
        self.result = result or []
        self.error = error
        self.calls = []

    def extract(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.result


class TestMergeCandidates:
    """Tests for merge_candidates function."""

    def test_sums_equal_names(self):
        """Test that equal names are merged by summing quantities."""
        merged = extraction.merge_candidates([
            CandidateItem("hammers", 2),
            CandidateItem("hammers", 3),
        ])
        assert _pairs(merged) == [("hammers", 5)]

    def test_case_and_plural_insensitive(self):
        """Test that case, spacing and plural forms match."""
        merged = extraction.merge_candidates([
            CandidateItem("Hammer", 1),
            CandidateItem("hammers ", 2),
            CandidateItem("HAMMER", 1),
        ])
        assert _pairs(merged) == [("Hammer", 4)]

    def test_first_seen_order(self):
        """Test that output follows first-seen order of distinct names."""
        merged = extraction.merge_candidates([
            CandidateItem("saw"),
            CandidateItem("hammer"),
            CandidateItem("saw"),
            CandidateItem("tape"),
        ])
        assert _pairs(merged) == [("saw", 2), ("hammer", 1), ("tape", 1)]

    def test_keeps_first_confidence(self):
        """Test that a merged item keeps the confidence of its first occurrence."""
        merged = extraction.merge_candidates([
            CandidateItem("saw", confidence=Confidence.MODEL_DERIVED),
            CandidateItem("saw", confidence=Confidence.RULE_BASED),
        ])
        assert merged[0].confidence is Confidence.MODEL_DERIVED

    def test_does_not_mutate_input(self):
        """Test that input candidates are left untouched."""
        first = CandidateItem("saw", 1)
        extraction.merge_candidates([first, CandidateItem("saw", 2)])
        assert first.quantity == 1

    def test_drops_names_empty_after_cleaning(self):
        """Test that names consisting only of punctuation are dropped."""
        merged = extraction.merge_candidates([CandidateItem("- ."), CandidateItem("saw")])
        assert _pairs(merged) == [("saw", 1)]


class TestExtract:
    """Tests for extract function."""

    def test_merge_property(self):
        """Test '2 hammers, 3 hammers' gives one item with quantity 5."""
        assert _pairs(extraction.extract("2 hammers, 3 hammers")) == [("hammers", 5)]

    def test_default_quantity(self):
        """Test 'hammer' gives hammer x1."""
        items = extraction.extract("hammer")
        assert _pairs(items) == [("hammer", 1)]
        assert items[0].confidence is Confidence.RULE_BASED

    def test_empty_input(self):
        """Test that empty input gives an empty list."""
        assert extraction.extract("") == []
        assert extraction.extract(None) == []

    @pytest.mark.parametrize("text", [
        "",
        "two boxes of screws and a hammer in the garage shelf",
        "0 widgets, a, 3",
        "- hammer\n- saw\n- 2x tape",
        ",,,and,,,",
        "10 AA batteries; 4 AAA batteries",
    ])
    def test_closure_property(self, text):
        """Test that every item has a non-empty name and quantity >= 1."""
        for item in extraction.extract(text):
            assert item.name.strip()
            assert item.quantity >= 1

    @pytest.mark.parametrize("error", [
        UnreachableError("down"),
        MalformedError("junk"),
    ])
    def test_fallback_on_model_error(self, error):
        """Test that a failing model gives exactly the fallback output."""
        text = "2 hammers, 3 hammers and a saw"
        model = _StubExtractor(error=error)

        result = extraction.extract(text, extractor=model)

        assert model.calls == [text]
        assert result == extraction.merge_candidates(fallback.segment(text))

    def test_fallback_on_unexpected_error(self):
        """Test that any other exception from the model is absorbed too."""
        model = _StubExtractor(error=RuntimeError("bug"))
        assert _pairs(extraction.extract("hammer", extractor=model)) == [("hammer", 1)]

    def test_fallback_on_empty_model_result(self):
        """Test that an empty model result falls back."""
        model = _StubExtractor(result=[])
        assert _pairs(extraction.extract("saw", extractor=model)) == [("saw", 1)]

    def test_model_result_used_and_merged(self):
        """Test that a successful model result wins and is merged."""
        model = _StubExtractor(result=[
            CandidateItem("screw box", 2, Confidence.MODEL_DERIVED),
            CandidateItem("hammer", 1, Confidence.MODEL_DERIVED),
            CandidateItem("screw boxes", 1, Confidence.MODEL_DERIVED),
        ])
        items = extraction.extract("two boxes of screws and a hammer", extractor=model)
        assert _pairs(items) == [("screw box", 3), ("hammer", 1)]
        assert all(i.confidence is Confidence.MODEL_DERIVED for i in items)

    def test_config_disabled_skips_model(self):
        """Test that no model is built when llm is disabled."""
        config = Config.from_dict({"llm": {"enabled": False}})
        with patch("treasure_trove.llm.ModelExtractor") as mock_cls:
            extraction.extract("hammer", config)
        mock_cls.from_config.assert_not_called()

    def test_config_enabled_uses_model(self):
        """Test that the model extractor is used when llm is enabled."""
        config = Config.from_dict({"llm": {"enabled": True}})
        model = MagicMock()
        model.extract.return_value = [CandidateItem("drill", 1, Confidence.MODEL_DERIVED)]
        with patch.object(ModelExtractor, "from_config", return_value=model):
            items = extraction.extract("a drill", config)
        assert _pairs(items) == [("drill", 1)]
        model.extract.assert_called_once_with("a drill")

    def test_config_enabled_unreachable_model_falls_back(self):
        """Test an enabled but unreachable model end to end."""
        requests = pytest.importorskip("requests")
        config = Config.from_dict({"llm": {"enabled": True, "timeout": 1}})
        with patch("requests.post", side_effect=requests.ConnectionError("refused")):
            items = extraction.extract("2 hammers and a saw", config)
        assert _pairs(items) == [("hammers", 2), ("saw", 1)]
        assert all(i.confidence is Confidence.RULE_BASED for i in items)


class TestSelectExtractor:
    """Tests for select_extractor function."""

    def test_none_config(self):
        """Test that no config means no model."""
        assert extraction.select_extractor(None) is None

    def test_enabled(self):
        """Test that an enabled config gives a ModelExtractor."""
        config = Config.from_dict({"llm": {"enabled": True, "model": "mistral"}})
        extractor = extraction.select_extractor(config)
        assert isinstance(extractor, ModelExtractor)
        assert extractor.model == "mistral"

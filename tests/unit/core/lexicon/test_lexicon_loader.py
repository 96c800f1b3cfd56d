"""Tests for the YAML lexicon loader."""

from __future__ import annotations

import pytest
import yaml

from painlog.core.lexicon.loader import LexiconError, load_lexicon, load_lexicon_file


class TestShippedLexicons:
    def test_portuguese_lexicon_loads(self, lexicon):
        assert lexicon.locale == "pt_BR"
        assert "dipirona" in lexicon.known_medications
        assert "insuportável" in lexicon.urgency["critical"]
        assert "SYMPTOM" in lexicon.entities

    def test_english_lexicon_loads(self, en_lexicon):
        assert en_lexicon.locale == "en"
        assert "ibuprofen" in en_lexicon.otc_medications
        assert "tramadol" in en_lexicon.prescribed_medications

    def test_both_lexicons_define_every_risk_pattern(self, lexicon, en_lexicon):
        assert set(lexicon.medication_risk_patterns) == set(en_lexicon.medication_risk_patterns)

    def test_anatomical_point_matching_ignores_case(self, lexicon):
        assert lexicon.is_anatomical_point("cabeça")
        assert lexicon.is_anatomical_point(" Costas ")
        assert not lexicon.is_anatomical_point("Estresse")

    def test_unknown_locale_raises(self):
        with pytest.raises(LexiconError):
            load_lexicon("xx_XX")


class TestCustomLexicon:
    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({
            "locale": "custom",
            "sentiment": {"positive": ["Great"], "negative": ["Awful"]},
            "medications": {"known": ["Aspirin"], "risk_patterns": {"excessive_use": "again"}},
        }))
        lex = load_lexicon(path=path)
        assert lex.locale == "custom"
        # Keywords are lower-cased on load
        assert lex.positive_words == ("great",)
        assert lex.known_medications == ("aspirin",)
        assert lex.medication_risk_patterns == {"excessive_use": "again"}
        assert lex.urgency == {}

    def test_missing_locale_key_raises(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("sentiment: {}\n")
        with pytest.raises(LexiconError):
            load_lexicon_file(path)

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(LexiconError):
            load_lexicon_file(path)

"""Unit tests for analyzers, tokenizers and filters."""

import dataclasses

import pytest

from site_search.search import analyzers
from site_search.search.analyzers import (
    SCRIPT_HAN,
    SCRIPT_KANA,
    SCRIPT_WORD,
    EnglishStemFilter,
    LowercaseFilter,
    ScriptAwareTokenizer,
    SiteAnalyzer,
    StopFilter,
    Token,
    available_analyzers,
    cjk_ratio,
    get_analyzer,
    resolve_analyzer_name,
    stem_english,
)


def _terms(analyzer, text):
    return [token.text for token in analyzer(text)]


@pytest.mark.unit
class TestToken:
    def test_tokens_are_immutable(self):
        token = Token(text="Guide", position=0, start_char=0, end_char=5)

        with pytest.raises(dataclasses.FrozenInstanceError):
            token.text = "guide"  # type: ignore[misc]

    def test_script_defaults_to_word(self):
        assert Token(text="guide", position=0, start_char=0, end_char=5).script == SCRIPT_WORD


@pytest.mark.unit
class TestSiteAnalyzer:
    """The shared analyzer must be deterministic and tolerate missing text."""

    def test_same_input_yields_identical_tokens(self):
        analyzer = SiteAnalyzer("standard")
        text = "Getting started: installation steps for the guide"

        assert analyzer(text) == analyzer(text)

    @pytest.mark.parametrize("text", [None, ""])
    def test_missing_text_yields_no_tokens(self, text):
        assert SiteAnalyzer("standard")(text) == []

    def test_lowercases_removes_stopwords_and_stems(self):
        assert _terms(SiteAnalyzer("standard"), "The Quick Brown Foxes") == ["quick", "brown", "fox"]

    def test_nostem_variant_keeps_surface_forms(self):
        assert _terms(SiteAnalyzer("standard-nostem", apply_stemming=False), "Running Foxes") == ["running", "foxes"]

    def test_offsets_point_into_original_text(self):
        text = "Hello, World"
        tokens = SiteAnalyzer("standard")(text)

        assert [(token.start_char, token.end_char) for token in tokens] == [(0, 5), (7, 12)]
        assert [text[token.start_char : token.end_char] for token in tokens] == ["Hello", "World"]

    def test_surrounding_apostrophes_are_dropped(self):
        tokens = SiteAnalyzer("standard-nostem", apply_stemming=False)("'quoted' don't")

        assert [token.text for token in tokens] == ["quoted", "don't"]
        assert tokens[0].start_char == 1

    def test_special_characters_never_become_tokens(self):
        assert _terms(SiteAnalyzer("standard"), '"*:~^+-()[]{}\\') == []

    def test_positions_are_renumbered_after_filtering(self):
        tokens = SiteAnalyzer("standard")("the guide and the steps")

        assert [token.position for token in tokens] == [0, 1]


@pytest.mark.unit
class TestScriptAwareTokenizer:
    def test_han_runs_go_through_segmenter(self, char_segmenter):
        tokens = list(ScriptAwareTokenizer(char_segmenter)("搜索引擎 search"))

        assert [token.text for token in tokens] == ["搜", "索", "引", "擎", "search"]
        assert [token.script for token in tokens] == [SCRIPT_HAN] * 4 + [SCRIPT_WORD]
        assert [token.position for token in tokens] == [0, 1, 2, 3, 4]

    def test_segment_offsets_are_absolute(self, char_segmenter):
        text = "go 中文"
        tokens = list(ScriptAwareTokenizer(char_segmenter)(text))

        assert [text[token.start_char : token.end_char] for token in tokens] == ["go", "中", "文"]

    def test_kana_runs_become_bigrams_per_script(self, char_segmenter):
        tokens = list(ScriptAwareTokenizer(char_segmenter)("カタカナとひらがな"))

        assert [token.text for token in tokens] == ["カタ", "タカ", "カナ", "とひ", "ひら", "らが", "がな"]
        assert {token.script for token in tokens} == {SCRIPT_KANA}
        assert [token.start_char for token in tokens] == [0, 1, 2, 4, 5, 6, 7]

    def test_single_kana_character_is_kept(self, char_segmenter):
        tokens = list(ScriptAwareTokenizer(char_segmenter)("漢は字"))

        assert [token.text for token in tokens] == ["漢", "は", "字"]
        assert tokens[1].script == SCRIPT_KANA

    def test_jieba_segments_chinese_words(self):
        text = "我来到北京清华大学"
        tokens = SiteAnalyzer("cjk", apply_stemming=False)(text)
        terms = [token.text for token in tokens]

        assert "北京" in terms
        assert "".join(terms) == text
        assert all(text[token.start_char : token.end_char] == token.text for token in tokens)


@pytest.mark.unit
class TestFilters:
    def test_lowercase_filter_keeps_unchanged_tokens(self):
        token = Token(text="guide", position=0, start_char=0, end_char=5)

        assert next(LowercaseFilter()([token])) is token

    def test_stop_filter_accepts_custom_vocabulary(self):
        tokens = [Token(text=word, position=i, start_char=0, end_char=0) for i, word in enumerate(["keep", "drop"])]

        assert [token.text for token in StopFilter(["DROP"])(tokens)] == ["keep"]

    def test_stemming_skips_non_word_scripts(self):
        han = Token(text="running", position=0, start_char=0, end_char=7, script=SCRIPT_HAN)
        word = Token(text="running", position=1, start_char=8, end_char=15)

        stemmed = list(EnglishStemFilter()([han, word]))

        assert stemmed[0] is han
        assert stemmed[1].text == "run"
        assert stemmed[1].start_char == 8

    def test_stemming_skips_non_alphabetic_words(self):
        token = Token(text="v2things", position=0, start_char=0, end_char=8)

        assert next(EnglishStemFilter()([token])).text == "v2things"


@pytest.mark.unit
class TestStemEnglish:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [
            ("installation", "installate"),
            ("running", "run"),
            ("getting", "get"),
            ("started", "start"),
            ("guides", "guide"),
            ("foxes", "fox"),
            ("stories", "story"),
            ("explaining", "explain"),
            ("falling", "fall"),
            ("organization", "organize"),
            ("happiness", "happi"),
        ],
    )
    def test_strips_common_suffixes(self, word, expected):
        assert stem_english(word) == expected

    @pytest.mark.parametrize("word", ["is", "bed", "need", "string", "process", "status", "analysis", "install"])
    def test_leaves_words_without_a_safe_suffix(self, word):
        assert stem_english(word) == word


@pytest.mark.unit
class TestAnalyzerRegistry:
    def test_available_analyzers(self):
        assert available_analyzers() == ["auto", "cjk", "standard", "standard-nostem"]

    def test_get_analyzer_returns_fresh_instances(self):
        first = get_analyzer("standard")
        second = get_analyzer("STANDARD")

        assert first is not second
        assert first.name == second.name == "standard"

    def test_get_analyzer_defaults_to_standard(self):
        assert get_analyzer(None).name == "standard"

    def test_auto_must_be_resolved_first(self):
        with pytest.raises(ValueError, match="resolved"):
            get_analyzer("auto")

    def test_unknown_analyzer_rejected(self):
        with pytest.raises(ValueError, match="Unknown analyzer"):
            get_analyzer("klingon")

    def test_registry_is_a_plain_mapping(self, monkeypatch):
        registry = analyzers._ANALYZER_FACTORIES.copy()
        registry["custom"] = lambda: SiteAnalyzer("custom", apply_stemming=False)
        monkeypatch.setattr(analyzers, "_ANALYZER_FACTORIES", registry)

        assert get_analyzer("custom").name == "custom"
        assert "custom" in available_analyzers()


@pytest.mark.unit
class TestAnalyzerResolution:
    def test_cjk_ratio(self):
        assert cjk_ratio(["全文检索"]) == 1.0
        assert cjk_ratio(["plain english"]) == 0.0
        assert cjk_ratio(["", "1234"]) == 0.0

    def test_auto_picks_cjk_for_mostly_chinese_corpus(self):
        assert resolve_analyzer_name("auto", ["全文检索", "静态网站 search"]) == "cjk"

    def test_auto_picks_standard_for_latin_corpus(self):
        assert resolve_analyzer_name("auto", ["Getting started", "一"]) == "standard"

    def test_explicit_name_passes_through(self):
        assert resolve_analyzer_name("CJK", ["plain english"]) == "cjk"
        assert resolve_analyzer_name(None, []) == "standard"

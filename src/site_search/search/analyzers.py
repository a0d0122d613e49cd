"""Text analysis shared by index building and querying.

An analyzer turns raw text into a list of ``Token`` values: a script-aware
tokenizer splits the text, then filters lowercase, drop stopwords and
optionally stem. The same analyzer configuration must be used on both sides of
the index, otherwise terms silently stop matching; the analyzer name is
recorded in the index file for that reason.

Text in scripts without inter-word spaces (Han, Hiragana, Katakana) is
segmented instead of split on whitespace: Han runs go through a dictionary
segmenter (jieba), kana runs are indexed as overlapping character bigrams
since jieba has no Japanese dictionary. Bigrams let a word that sits in the
middle of a hiragana run still be found.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
import re
from typing import Protocol

import jieba


SCRIPT_HAN = "han"
SCRIPT_KANA = "kana"
SCRIPT_WORD = "word"

_HAN_CHARS = "㐀-䶿一-鿿豈-﫿々〆"
_HIRAGANA_CHARS = "ぁ-ゟ"
_KATAKANA_CHARS = "゠-ヿㇰ-ㇿｦ-ﾟ"
_CJK_CHARS = _HAN_CHARS + _HIRAGANA_CHARS + _KATAKANA_CHARS

_SCRIPT_RUN_PATTERN = re.compile(
    rf"(?P<han>[{_HAN_CHARS}]+)"
    rf"|(?P<hiragana>[{_HIRAGANA_CHARS}]+)"
    rf"|(?P<katakana>[{_KATAKANA_CHARS}]+)"
    rf"|(?P<word>(?:[^\W{_CJK_CHARS}]|')+)",
    re.UNICODE,
)
_CJK_CHAR_PATTERN = re.compile(rf"[{_CJK_CHARS}]")
_LETTER_PATTERN = re.compile(r"[^\W\d_]", re.UNICODE)

ENGLISH_STOPWORDS = frozenset(
    "a an and are as at be but by for if in into is it no not of on or such "
    "that the their then there these they this to was will with".split()
)


@dataclass(frozen=True, slots=True)
class Token:
    """One analyzed term with its character span in the source text."""

    text: str
    position: int
    start_char: int
    end_char: int
    script: str = SCRIPT_WORD


TokenFilter = Callable[[Iterable[Token]], Iterator[Token]]


class Analyzer(Protocol):
    """What the index builder and query engine need from an analyzer."""

    name: str

    def __call__(self, text: str | None) -> list[Token]:  # pragma: no cover - interface definition
        ...


class Segmenter(Protocol):
    """Dictionary segmenter yielding ``(word, start, end)`` triples."""

    def tokenize(self, text: str) -> Iterable[tuple[str, int, int]]:  # pragma: no cover - interface definition
        ...


class ScriptAwareTokenizer:
    """Tokenizer that splits on word boundaries and segments CJK runs.

    Words in whitespace-delimited scripts are matched as ``\\w`` runs (with
    embedded apostrophes). Han runs are handed to the segmenter, Hiragana and
    Katakana runs become overlapping bigrams (a one-character run stays a
    single token). The segmenter is created once and reused for every call.
    """

    def __init__(self, segmenter: Segmenter | None = None) -> None:
        self.segmenter: Segmenter = segmenter if segmenter is not None else jieba.Tokenizer()

    def __call__(self, text: str) -> Iterator[Token]:
        for match in _SCRIPT_RUN_PATTERN.finditer(text):
            kind = match.lastgroup
            run = match.group(0)
            offset = match.start()
            if kind == "han":
                for word, start, end in self.segmenter.tokenize(run):
                    if word.strip():
                        yield Token(word, 0, offset + start, offset + end, SCRIPT_HAN)
            elif kind == "word":
                word = run.strip("'")
                if word:
                    start = offset + run.index(word)
                    yield Token(word, 0, start, start + len(word), SCRIPT_WORD)
            else:
                yield from _kana_bigrams(run, offset)


def _kana_bigrams(run: str, offset: int) -> Iterator[Token]:
    if len(run) == 1:
        yield Token(run, 0, offset, offset + 1, SCRIPT_KANA)
        return
    for index in range(len(run) - 1):
        start = offset + index
        yield Token(run[index : index + 2], 0, start, start + 2, SCRIPT_KANA)


class LowercaseFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            lowered = token.text.lower()
            yield token if lowered == token.text else replace(token, text=lowered)


class StopFilter:
    """Drops tokens found in ``stopwords`` (compared lowercase)."""

    def __init__(self, stopwords: Iterable[str] | None = None) -> None:
        self.stopwords = frozenset(word.lower() for word in (ENGLISH_STOPWORDS if stopwords is None else stopwords))

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        return (token for token in tokens if token.text.lower() not in self.stopwords)


class EnglishStemFilter:
    """Stems ASCII words with :func:`stem_english`.

    Segmented CJK tokens and words in other scripts pass through untouched.
    """

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            text = token.text
            if token.script == SCRIPT_WORD and text.isascii() and text.isalpha():
                stemmed = stem_english(text)
                if stemmed != text:
                    token = replace(token, text=stemmed)
            yield token


_MIN_STEM = 3
_VOWELS = frozenset("aeiouy")
_KEEP_DOUBLED = frozenset("lsz")
_PLURAL_ES_AFTER = ("s", "x", "z", "ch", "sh")
_SINGULAR_S_ENDINGS = ("ss", "us", "is")
_INFLECTIONS = ("ing", "ed")
_DERIVATIONS: tuple[tuple[str, str], ...] = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("iveness", "ive"),
    ("ation", "ate"),
    ("ness", ""),
    ("ment", ""),
)


def stem_english(word: str) -> str:
    """Light English stemmer for lowercase ASCII words.

    Strips a plural ending, then an ``-ing``/``-ed`` inflection (undoubling a
    final consonant, ``running`` -> ``run``), then one derivational suffix.
    Every step keeps at least three characters of stem.
    """

    if len(word) <= _MIN_STEM:
        return word
    return _strip_derivation(_strip_inflection(_strip_plural(word)))


def _strip_plural(word: str) -> str:
    if word.endswith("ies") and len(word) - 3 >= _MIN_STEM - 1:
        return word[:-3] + "y"
    if word.endswith("es") and word[:-2].endswith(_PLURAL_ES_AFTER) and len(word) - 2 >= _MIN_STEM:
        return word[:-2]
    if word.endswith("s") and not word.endswith(_SINGULAR_S_ENDINGS) and len(word) - 1 >= _MIN_STEM:
        return word[:-1]
    return word


def _strip_inflection(word: str) -> str:
    for suffix in _INFLECTIONS:
        if not word.endswith(suffix):
            continue
        stem = word[: -len(suffix)]
        if len(stem) < _MIN_STEM or not _VOWELS.intersection(stem):
            return word
        if len(stem) > _MIN_STEM and stem[-1] == stem[-2] and stem[-1] not in _VOWELS | _KEEP_DOUBLED:
            stem = stem[:-1]
        return stem
    return word


def _strip_derivation(word: str) -> str:
    for suffix, replacement in _DERIVATIONS:
        if word.endswith(suffix) and len(word) - len(suffix) >= _MIN_STEM:
            return word[: -len(suffix)] + replacement
    return word


class SiteAnalyzer:
    """Analyzer shared by the index builder and the query engine.

    Order is fixed: segmentation, lowercase, stopwords, then optional stemming.
    ``None`` and empty strings produce no tokens. Positions count the tokens
    that survive filtering.
    """

    def __init__(
        self,
        name: str = "standard",
        *,
        stopwords: Sequence[str] | None = None,
        apply_stemming: bool = True,
        segmenter: Segmenter | None = None,
    ) -> None:
        self.name = name
        self.apply_stemming = apply_stemming
        self.tokenizer = ScriptAwareTokenizer(segmenter)
        self.filters: list[TokenFilter] = [LowercaseFilter(), StopFilter(stopwords)]
        if apply_stemming:
            self.filters.append(EnglishStemFilter())

    def __call__(self, text: str | None) -> list[Token]:
        if not text:
            return []
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return [replace(token, position=position) for position, token in enumerate(stream)]

    def __repr__(self) -> str:
        return f"SiteAnalyzer(name={self.name!r}, apply_stemming={self.apply_stemming})"


AUTO_ANALYZER = "auto"

_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "standard": lambda: SiteAnalyzer("standard"),
    "standard-nostem": lambda: SiteAnalyzer("standard-nostem", apply_stemming=False),
    "cjk": lambda: SiteAnalyzer("cjk", apply_stemming=False),
}


def available_analyzers() -> list[str]:
    return sorted([*_ANALYZER_FACTORIES, AUTO_ANALYZER])


def get_analyzer(name: str | None) -> Analyzer:
    """Return a new analyzer instance by name, defaulting to ``standard``.

    ``auto`` cannot be instantiated directly; resolve it against the corpus
    with :func:`resolve_analyzer_name` first.
    """

    normalized = (name or "standard").lower()
    if normalized == AUTO_ANALYZER:
        raise ValueError("Analyzer 'auto' must be resolved against a corpus before use")
    factory = _ANALYZER_FACTORIES.get(normalized)
    if factory is None:
        raise ValueError(f"Unknown analyzer '{name}'. Available: {available_analyzers()}")
    return factory()


def cjk_ratio(texts: Iterable[str]) -> float:
    """Share of letter characters that belong to Han or kana scripts."""

    letters = 0
    cjk = 0
    for text in texts:
        if not text:
            continue
        letters += len(_LETTER_PATTERN.findall(text))
        cjk += len(_CJK_CHAR_PATTERN.findall(text))
    if letters == 0:
        return 0.0
    return cjk / letters


def resolve_analyzer_name(name: str | None, texts: Iterable[str]) -> str:
    """Pick a concrete analyzer name, resolving ``auto`` by sampling ``texts``.

    A predominantly CJK corpus gets the non-stemming ``cjk`` analyzer.
    """

    normalized = (name or "standard").lower()
    if normalized != AUTO_ANALYZER:
        return normalized
    return "cjk" if cjk_ratio(texts) > 0.5 else "standard"

"""
Lyric text normalisation: lower-case, strip punctuation, lemmatize, drop stop-words.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Mapping, Optional, Union

import pandas as pd
from sklearn.feature_extraction import text as sk_text

from . import config

log = logging.getLogger(__name__)

# Apostrophes are removed so contractions collapse (don't -> dont); anything
# else that is not a letter splits tokens.
APOSTROPHES = re.compile(r"['‘’`]")
NON_LETTERS = re.compile(r"[^a-z]+")

# Section markers scraped along with the lyrics, e.g. [Chorus], [Verse 2: Name]
SECTION_TAGS = re.compile(r"\[[^\]]*\]")

MAX_LEMMA_STEPS = 5

Lemmatizer = Union[Mapping[str, str], Callable[[str], str]]


def wordnet_lemmatizer() -> Callable[[str], str]:
    """NLTK WordNet lemmatizer; needs the ``wordnet`` corpus to be downloaded."""
    import nltk
    from nltk.stem import WordNetLemmatizer

    try:
        nltk.data.find("corpora/wordnet")
    except LookupError:
        nltk.download("wordnet", quiet=True)
    return WordNetLemmatizer().lemmatize


def make_lemmatizer(name: str) -> Callable[[str], str]:
    if name == "wordnet":
        return wordnet_lemmatizer()
    if name == "none":
        return lambda tok: tok
    raise ValueError(f"Unknown lemmatizer: {name!r}")


class Normalizer:
    """Turns raw lyric text into a space-joined string of lemmas.

    ``stop_words`` defaults to scikit-learn's English list; ``custom_stop_words``
    is applied on top of it. ``lemmatizer`` is either a callable or a plain
    mapping from surface form to lemma (unmapped tokens pass through).
    """

    def __init__(
        self,
        lemmatizer: Lemmatizer,
        stop_words: Optional[Iterable[str]] = None,
        custom_stop_words: Iterable[str] = config.CUSTOM_STOPWORDS,
    ):
        base = sk_text.ENGLISH_STOP_WORDS if stop_words is None else stop_words
        self.stop_words = frozenset(w.lower() for w in base) | frozenset(
            w.lower() for w in custom_stop_words
        )
        if isinstance(lemmatizer, Mapping):
            table = dict(lemmatizer)
            self._lemma = lambda tok: table.get(tok, tok)
        else:
            self._lemma = lemmatizer

    def tokens(self, raw: str) -> List[str]:
        if not raw:
            return []
        s = SECTION_TAGS.sub(" ", str(raw).lower())
        s = APOSTROPHES.sub("", s)
        toks = NON_LETTERS.sub(" ", s).split()

        # stop-words are checked on the surface form and again on the lemma,
        # lemmatizers map some function words onto non-stop forms (was -> wa)
        out = []
        for tok in toks:
            if tok in self.stop_words:
                continue
            lemma = self.lemma(tok)
            if not lemma or lemma in self.stop_words:
                continue
            out.append(lemma)
        return out

    def lemma(self, tok: str) -> str:
        """Lemmatize until the form stops changing (WordNet maps pass -> pas -> pa)."""
        for _ in range(MAX_LEMMA_STEPS):
            nxt = self._lemma(tok)
            if nxt == tok or not nxt:
                return nxt
            tok = nxt
        return tok

    def __call__(self, raw: str) -> str:
        return " ".join(self.tokens(raw))

    def transform(self, songs: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of ``songs`` with a ``clean`` column."""
        out = songs.copy()
        out["clean"] = [self(t) for t in out["lyrics"].tolist()]
        n_empty = int((out["clean"] == "").sum())
        if n_empty:
            ids = out.loc[out["clean"] == "", "id"].tolist()
            log.warning("%d songs are empty after normalisation: %s", n_empty, ids[:20])
        return out


def normalizer_from_config(cfg: config.PipelineConfig, lemmatizer: Optional[Lemmatizer] = None) -> Normalizer:
    if lemmatizer is None:
        lemmatizer = make_lemmatizer(cfg.lemmatizer)
    return Normalizer(lemmatizer=lemmatizer, custom_stop_words=cfg.custom_stopwords)

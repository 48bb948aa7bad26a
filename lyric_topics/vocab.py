"""
Vocabulary construction and document-frequency pruning.

A ``Corpus`` keeps the vocabulary, the sparse song-by-term count matrix and
the song metadata together; the three are only ever produced as a unit.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List

import numpy as np
import pandas as pd
from scipy import sparse
from sklearn.feature_extraction.text import CountVectorizer

from .errors import AlignmentError, DegenerateInputError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Corpus:
    vocab: np.ndarray              # (n_terms,) str
    counts: sparse.csr_matrix      # (n_docs, n_terms) int
    meta: pd.DataFrame             # one row per counts row, same order
    dropped_ids: List[str] = field(default_factory=list)

    @property
    def n_docs(self) -> int:
        return self.counts.shape[0]

    @property
    def n_terms(self) -> int:
        return self.counts.shape[1]

    @property
    def n_dropped(self) -> int:
        return len(self.dropped_ids)

    def doc_freq(self) -> np.ndarray:
        return np.asarray((self.counts > 0).sum(axis=0)).ravel()

    def validate(self, stage: str) -> "Corpus":
        if self.n_docs != len(self.meta):
            raise AlignmentError(
                stage, f"{self.n_docs} count rows but {len(self.meta)} metadata rows"
            )
        if self.n_terms != len(self.vocab):
            raise AlignmentError(
                stage, f"count matrix has {self.n_terms} columns but vocabulary has {len(self.vocab)} terms"
            )
        if self.counts.nnz and (self.counts.indices.min() < 0 or self.counts.indices.max() >= len(self.vocab)):
            raise AlignmentError(stage, "term index outside the current vocabulary")
        if self.counts.nnz and self.counts.data.min() < 0:
            raise AlignmentError(stage, "negative term count")
        empty = np.flatnonzero(np.diff(self.counts.indptr) == 0)
        if empty.size:
            ids = self.meta["id"].iloc[empty].tolist()
            raise AlignmentError(stage, f"{empty.size} songs have no terms: {ids[:10]}")
        return self


def build_vocabulary(songs: pd.DataFrame, stage: str = "vocabulary") -> Corpus:
    """Tokenize ``songs['clean']`` and encode every non-empty song as term counts.

    Songs whose cleaned text is empty are dropped (logged and listed on the
    result). Vocabulary order is the vectorizer's sorted order.
    """
    if "clean" not in songs.columns:
        raise AlignmentError(stage, "songs table has no 'clean' column; normalise first")
    clean = songs["clean"].fillna("").astype(str)
    keep = clean.str.split().str.len().fillna(0) > 0
    dropped = songs.loc[~keep, "id"].astype(str).tolist()
    if dropped:
        log.warning("Dropping %d songs with empty cleaned text: %s", len(dropped), dropped[:20])

    meta = songs.loc[keep].reset_index(drop=True)
    if meta.empty:
        raise DegenerateInputError(stage, "no songs left with non-empty cleaned text")

    vect = CountVectorizer(
        tokenizer=str.split,
        token_pattern=None,
        lowercase=False,
        dtype=np.int64,
    )
    X = vect.fit_transform(meta["clean"].tolist()).tocsr()
    vocab = np.asarray(vect.get_feature_names_out(), dtype=object)
    return Corpus(vocab=vocab, counts=X, meta=meta, dropped_ids=dropped).validate(stage)


def min_df_threshold(proportion: float, n_docs: int) -> int:
    """Smallest document count a term needs to survive pruning (at least 1)."""
    return max(1, math.ceil(proportion * n_docs))


def prune_vocabulary(corpus: Corpus, min_df: int, stage: str = "prune") -> Corpus:
    """Keep terms used by at least ``min_df`` songs and re-index against them.

    Songs left with no terms are dropped; their ids are appended to
    ``dropped_ids`` of the returned corpus. The input corpus is not modified.
    """
    if min_df < 1:
        raise ValueError(f"min_df must be >= 1, got {min_df}")
    df = corpus.doc_freq()
    keep_terms = np.flatnonzero(df >= min_df)
    if keep_terms.size == 0:
        raise DegenerateInputError(
            stage, f"no term is used by {min_df} or more songs; vocabulary would be empty"
        )

    # column slicing renumbers indices against the reduced vocabulary
    X = corpus.counts[:, keep_terms].tocsr()
    vocab = corpus.vocab[keep_terms]

    row_nnz = np.diff(X.indptr)
    keep_docs = np.flatnonzero(row_nnz > 0)
    lost = np.flatnonzero(row_nnz == 0)
    dropped = corpus.meta["id"].iloc[lost].astype(str).tolist()
    if dropped:
        log.warning(
            "Pruning at min_df=%d removed every term of %d songs: %s",
            min_df, len(dropped), dropped[:20],
        )
    log.info(
        "Pruned vocabulary %d -> %d terms (min_df=%d)", corpus.n_terms, vocab.size, min_df
    )

    pruned = Corpus(
        vocab=vocab,
        counts=X[keep_docs],
        meta=corpus.meta.iloc[keep_docs].reset_index(drop=True),
        dropped_ids=list(corpus.dropped_ids) + dropped,
    )
    if pruned.n_docs == 0:
        raise DegenerateInputError(stage, "pruning left no songs")
    return pruned.validate(stage)


def prune_by_proportion(corpus: Corpus, proportion: float, stage: str = "prune") -> Corpus:
    return prune_vocabulary(corpus, min_df_threshold(proportion, corpus.n_docs), stage=stage)

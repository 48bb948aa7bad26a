"""
Human-readable topic labels from the topic-word matrix.
"""
from __future__ import annotations

from typing import List, Optional

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from . import config


def _top_n(scores: np.ndarray, n: int) -> np.ndarray:
    # stable sort on the negated scores keeps vocabulary order among ties
    return np.argsort(-scores, axis=1, kind="stable")[:, :n]


def top_terms(topic_word: np.ndarray, vocab, n: int = config.LABEL_N) -> List[List[str]]:
    """The ``n`` most probable terms of every topic, most probable first."""
    vocab = np.asarray(vocab, dtype=object)
    n = min(n, vocab.size)
    return [vocab[idx].tolist() for idx in _top_n(np.asarray(topic_word), n)]


def topic_labels(topic_word: np.ndarray, vocab, n: int = config.LABEL_N, sep: str = ", ") -> List[str]:
    return [sep.join(terms) for terms in top_terms(topic_word, vocab, n)]


def frex_scores(topic_word: np.ndarray, weight: float = config.FREX_WEIGHT) -> np.ndarray:
    """Harmonic mean of each term's frequency rank and exclusivity rank within a topic."""
    beta = np.asarray(topic_word)
    excl = beta / beta.sum(axis=0, keepdims=True)
    V = beta.shape[1]
    freq_ecdf = np.vstack([rankdata(row, method="max") / V for row in beta])
    excl_ecdf = np.vstack([rankdata(row, method="max") / V for row in excl])
    return 1.0 / (weight / excl_ecdf + (1.0 - weight) / freq_ecdf)


def lift_scores(topic_word: np.ndarray, counts) -> np.ndarray:
    """Topic probability of each term divided by its share of all corpus tokens."""
    totals = np.asarray(counts.sum(axis=0), dtype=float).ravel()
    share = totals / totals.sum()
    return np.asarray(topic_word) / share[np.newaxis, :]


def label_table(
    topic_word: np.ndarray,
    vocab,
    counts=None,
    n: int = config.LABEL_N,
    frex_weight: float = config.FREX_WEIGHT,
) -> pd.DataFrame:
    """One row per topic with probability, FREX and (given counts) lift labels."""
    vocab = np.asarray(vocab, dtype=object)
    n = min(n, vocab.size)
    rows = []
    prob = _top_n(np.asarray(topic_word), n)
    frex = _top_n(frex_scores(topic_word, frex_weight), n)
    lift = _top_n(lift_scores(topic_word, counts), n) if counts is not None else None
    for k in range(prob.shape[0]):
        row = {
            "topic": k,
            "label": ", ".join(vocab[prob[k]]),
            "frex": ", ".join(vocab[frex[k]]),
        }
        if lift is not None:
            row["lift"] = ", ".join(vocab[lift[k]])
        rows.append(row)
    return pd.DataFrame(rows)


def top_songs(doc_topic: np.ndarray, meta: pd.DataFrame, n: int = config.TOP_SONGS_N,
              columns: Optional[List[str]] = None) -> pd.DataFrame:
    """The ``n`` songs carrying the most weight on each topic."""
    doc_topic = np.asarray(doc_topic)
    columns = columns or [c for c in ("id", "band", "writer", "album") if c in meta.columns]
    n = min(n, doc_topic.shape[0])
    order = np.argsort(-doc_topic.T, axis=1, kind="stable")[:, :n]
    rows = []
    for k, idx in enumerate(order):
        for rank, i in enumerate(idx, start=1):
            rec = {"topic": k, "rank": rank, "weight": float(doc_topic[i, k])}
            rec.update(meta.iloc[i][columns].to_dict())
            rows.append(rec)
    return pd.DataFrame(rows)

"""
Gower dissimilarity between songs and k-medoids clustering over it.

The cluster count is picked by sweeping a range of counts and keeping the
one with the highest mean silhouette; ties go to the smallest count.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import silhouette_score

from . import config
from .errors import AlignmentError, DegenerateClusteringError

log = logging.getLogger(__name__)

SCORE_TOL = 1e-12


def gower_matrix(features: pd.DataFrame, weights: Optional[Dict[str, float]] = None) -> np.ndarray:
    """Pairwise Gower dissimilarity, values in [0, 1].

    Numeric columns contribute ``|x_i - x_j| / range``, anything else
    contributes 0 on a match and 1 on a mismatch. A pair skips a column when
    either value is missing. Columns with zero range contribute 0.
    """
    if features.shape[1] == 0:
        raise ValueError("gower_matrix needs at least one feature column")
    n = len(features)
    weights = weights or {}
    num = np.zeros((n, n))
    den = np.zeros((n, n))

    for col in features.columns:
        w = float(weights.get(col, 1.0))
        if w <= 0:
            continue
        s = features[col]
        present = s.notna().to_numpy()
        valid = np.outer(present, present).astype(float)
        if pd.api.types.is_bool_dtype(s) or not pd.api.types.is_numeric_dtype(s):
            vals = s.astype(object).to_numpy()
            d = (vals[:, None] != vals[None, :]).astype(float)
        else:
            x = s.astype(float).to_numpy()
            rng = np.nanmax(x) - np.nanmin(x) if present.any() else 0.0
            if rng > 0:
                d = np.abs(x[:, None] - x[None, :]) / rng
            else:
                d = np.zeros((n, n))
        d = np.nan_to_num(d) * valid
        num += w * d
        den += w * valid

    D = np.divide(num, den, out=np.zeros_like(num), where=den > 0)
    D = (D + D.T) / 2.0
    np.fill_diagonal(D, 0.0)
    return np.clip(D, 0.0, 1.0)


def similarity_features(doc_topics: pd.DataFrame, extra: Sequence[str] = ()) -> pd.DataFrame:
    cols = [c for c in doc_topics.columns if c.startswith("topic_")]
    missing = [c for c in extra if c not in doc_topics.columns]
    if missing:
        raise AlignmentError("similarity", f"extra feature columns not found: {missing}")
    return doc_topics[cols + list(extra)]


@dataclass
class MedoidClustering:
    labels: np.ndarray         # (n,) cluster index in [0, k)
    medoids: np.ndarray        # (k,) row index of each cluster's medoid
    cost: float                # sum of distances to assigned medoid
    n_iter: int


def _assign(D: np.ndarray, medoids: np.ndarray) -> np.ndarray:
    labels = np.argmin(D[:, medoids], axis=1)
    # a medoid always belongs to its own cluster, even when tied with another
    labels[medoids] = np.arange(medoids.size)
    return labels


def k_medoids(D: np.ndarray, k: int, random_state: int = config.RANDOM_STATE, max_iter: int = 300) -> MedoidClustering:
    """PAM swap search from a seeded random set of medoids.

    Each iteration evaluates every (medoid, non-medoid) swap and applies the
    one that lowers total cost the most; stops when no swap improves it.
    """
    D = np.asarray(D, dtype=float)
    n = D.shape[0]
    if not 1 <= k <= n:
        raise ValueError(f"k must be in [1, {n}], got {k}")

    rs = np.random.RandomState(random_state)
    medoids = np.sort(rs.choice(n, size=k, replace=False))
    cost = D[:, medoids].min(axis=1).sum()

    n_iter = 0
    for n_iter in range(1, max_iter + 1):
        is_medoid = np.zeros(n, dtype=bool)
        is_medoid[medoids] = True
        candidates = np.flatnonzero(~is_medoid)
        if candidates.size == 0:
            break

        best_cost, best_swap = cost, None
        for slot in range(k):
            others = np.delete(medoids, slot)
            if others.size:
                d_others = D[:, others].min(axis=1)
            else:
                d_others = np.full(n, np.inf)
            swap_costs = np.minimum(d_others[:, None], D[:, candidates]).sum(axis=0)
            j = int(np.argmin(swap_costs))
            if swap_costs[j] < best_cost - SCORE_TOL:
                best_cost, best_swap = swap_costs[j], (slot, candidates[j])

        if best_swap is None:
            break
        slot, h = best_swap
        medoids = medoids.copy()
        medoids[slot] = h
        medoids.sort()
        cost = best_cost

    labels = _assign(D, medoids)
    return MedoidClustering(labels=labels, medoids=medoids, cost=float(cost), n_iter=n_iter)


def _score_k(D: np.ndarray, k: int, random_state: int) -> Tuple[int, float, MedoidClustering]:
    result = k_medoids(D, k, random_state=random_state)
    score = silhouette_score(D, result.labels, metric="precomputed")
    return k, float(score), result


def choose_clusters(
    D: np.ndarray,
    k_range: Tuple[int, int] = config.CLUSTER_RANGE,
    random_state: int = config.RANDOM_STATE,
    n_jobs: int = 1,
    stage: str = "cluster",
):
    """Sweep K' over ``k_range`` (inclusive) and keep the best silhouette.

    Returns ``(k, clustering, sweep)`` where ``sweep`` has one row per
    candidate. Every candidate uses the same seed. A range with lo == hi
    just clusters at that count.
    """
    D = np.asarray(D, dtype=float)
    n = D.shape[0]
    lo, hi = k_range
    candidates = [k for k in range(lo, hi + 1) if 2 <= k <= n - 1]
    if not candidates:
        raise DegenerateClusteringError(
            stage, f"no cluster count in {lo}..{hi} is between 2 and {n - 1} for {n} songs"
        )
    if len(candidates) == 1 and hi > lo:
        raise DegenerateClusteringError(
            stage, f"only K'={candidates[0]} is viable for {n} songs; nothing to choose between"
        )

    results = Parallel(n_jobs=n_jobs)(
        delayed(_score_k)(D, k, random_state) for k in candidates
    )
    sweep = pd.DataFrame(
        [{"k": k, "silhouette": s, "cost": r.cost} for k, s, r in results]
    )
    scores = sweep["silhouette"].to_numpy()
    if len(candidates) > 1 and np.ptp(scores) <= SCORE_TOL:
        raise DegenerateClusteringError(
            stage, f"every cluster count in {candidates} scores silhouette {scores[0]:.4f}"
        )

    # candidates are ascending, so the first maximum is the smallest K'
    best = int(np.flatnonzero(scores >= scores.max() - SCORE_TOL)[0])
    k, _, clustering = results[best]
    log.info("Chose K'=%d with silhouette %.4f", k, scores[best])
    return k, clustering, sweep

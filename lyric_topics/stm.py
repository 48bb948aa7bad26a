"""
Topic model with prevalence covariates, fit by variational EM.

Each song d draws topic proportions theta_d ~ Dirichlet(alpha_d) with
alpha_d = exp(x_d @ coef), where x_d is an intercept plus a one-hot encoding
of the prevalence covariate (the writer). Words are drawn from the usual
topic-word mixture. The E-step is the standard LDA mean-field update with a
per-song prior; the M-step re-estimates the topic-word Dirichlets from the
expected counts and the prevalence coefficients by L-BFGS on the Dirichlet
likelihood with an L2 prior.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import sparse
from scipy.optimize import minimize
from scipy.special import digamma, gammaln, logsumexp
from sklearn.cluster import AgglomerativeClustering, MiniBatchKMeans
from sklearn.preprocessing import normalize

from . import config
from .errors import AlignmentError, DegenerateInputError

log = logging.getLogger(__name__)

EPS = np.finfo(float).eps
MAX_LOG_ALPHA = 30.0
WARD_MAX_DOCS = 5000             # above this the first start uses MiniBatchKMeans


def topic_columns(n_topics: int) -> List[str]:
    return [f"topic_{k}" for k in range(n_topics)]


def _dirichlet_expectation(a: np.ndarray) -> np.ndarray:
    """E[log X] for X ~ Dir(a); rows of a 2-D array are separate Dirichlets."""
    if a.ndim == 1:
        return digamma(a) - digamma(a.sum())
    return digamma(a) - digamma(a.sum(axis=1))[:, np.newaxis]


class PrevalenceTopicModel:
    def __init__(
        self,
        n_topics: int = 10,
        prevalence_sigma: float = config.PREVALENCE_SIGMA,
        topic_word_prior: float = config.TOPIC_WORD_PRIOR,
        max_em_iter: int = config.MAX_EM_ITER,
        em_tol: float = config.EM_TOL,
        max_doc_iter: int = config.MAX_DOC_ITER,
        doc_tol: float = config.DOC_TOL,
        n_init: int = config.N_INIT,
        random_state: int = config.RANDOM_STATE,
    ):
        self.n_topics = n_topics
        self.prevalence_sigma = prevalence_sigma
        self.topic_word_prior = topic_word_prior
        self.max_em_iter = max_em_iter
        self.em_tol = em_tol
        self.max_doc_iter = max_doc_iter
        self.doc_tol = doc_tol
        self.n_init = n_init
        self.random_state = random_state

    # design matrix

    def _design(self, covariate: Optional[Sequence], n_docs: int) -> np.ndarray:
        ones = np.ones((n_docs, 1))
        if covariate is None:
            return ones
        values = pd.Series(list(covariate), dtype=object).fillna("").astype(str)
        onehot = np.column_stack([(values == lvl).to_numpy(float) for lvl in self.levels_]) \
            if self.levels_ else np.zeros((n_docs, 0))
        return np.hstack([ones, onehot])

    def _alpha(self, Xd: np.ndarray, coef: np.ndarray) -> np.ndarray:
        return np.exp(np.clip(Xd @ coef, -MAX_LOG_ALPHA, MAX_LOG_ALPHA))

    # variational steps

    def _e_step(self, X: sparse.csr_matrix, alpha: np.ndarray, exp_Elog_beta: np.ndarray):
        n_docs, K = X.shape[0], exp_Elog_beta.shape[0]
        gamma = np.empty((n_docs, K))
        sstats = np.zeros_like(exp_Elog_beta)
        for d in range(n_docs):
            ids = X.indices[X.indptr[d]:X.indptr[d + 1]]
            cnts = X.data[X.indptr[d]:X.indptr[d + 1]].astype(float)
            a = alpha[d]
            g = a + cnts.sum() / K
            exp_Elog_theta = np.exp(_dirichlet_expectation(g))
            eb = exp_Elog_beta[:, ids]
            phinorm = exp_Elog_theta @ eb + EPS
            for _ in range(self.max_doc_iter):
                last = g
                g = a + exp_Elog_theta * ((cnts / phinorm) @ eb.T)
                exp_Elog_theta = np.exp(_dirichlet_expectation(g))
                phinorm = exp_Elog_theta @ eb + EPS
                if np.mean(np.abs(g - last)) < self.doc_tol:
                    break
            gamma[d] = g
            sstats[:, ids] += np.outer(exp_Elog_theta, cnts / phinorm)
        sstats *= exp_Elog_beta
        return gamma, sstats

    def _m_step_prevalence(self, Xd: np.ndarray, gamma: np.ndarray, coef: np.ndarray) -> np.ndarray:
        Elog_theta = _dirichlet_expectation(gamma)
        P, K = coef.shape
        inv_var = 1.0 / self.prevalence_sigma ** 2

        def neg_objective(flat):
            W = flat.reshape(P, K)
            alpha = self._alpha(Xd, W)
            a0 = alpha.sum(axis=1)
            ll = (
                gammaln(a0).sum()
                - gammaln(alpha).sum()
                + ((alpha - 1.0) * Elog_theta).sum()
                - 0.5 * inv_var * (W ** 2).sum()
            )
            G = digamma(a0)[:, np.newaxis] - digamma(alpha) + Elog_theta
            grad = Xd.T @ (G * alpha) - inv_var * W
            return -ll, -grad.ravel()

        res = minimize(neg_objective, coef.ravel(), jac=True, method="L-BFGS-B")
        return res.x.reshape(P, K)

    def _bound(self, X: sparse.csr_matrix, gamma: np.ndarray, alpha: np.ndarray, lam: np.ndarray) -> float:
        """Evidence lower bound for the current variational parameters."""
        eta = self.topic_word_prior
        V = lam.shape[1]
        Elog_theta = _dirichlet_expectation(gamma)
        Elog_beta = _dirichlet_expectation(lam)

        score = 0.0
        for d in range(X.shape[0]):
            ids = X.indices[X.indptr[d]:X.indptr[d + 1]]
            cnts = X.data[X.indptr[d]:X.indptr[d + 1]]
            norm_phi = logsumexp(Elog_theta[d][:, np.newaxis] + Elog_beta[:, ids], axis=0)
            score += np.dot(cnts, norm_phi)

        score += np.sum((alpha - gamma) * Elog_theta)
        score += np.sum(gammaln(gamma) - gammaln(alpha))
        score += np.sum(gammaln(alpha.sum(axis=1)) - gammaln(gamma.sum(axis=1)))

        score += np.sum((eta - lam) * Elog_beta)
        score += np.sum(gammaln(lam) - gammaln(eta))
        score += np.sum(gammaln(eta * V) - gammaln(lam.sum(axis=1)))
        return float(score)

    # initialisation

    def _partition_init(self, X: sparse.csr_matrix, K: int, rs: np.random.RandomState) -> np.ndarray:
        """Topic-word pseudo-counts seeded from a hard partition of the songs."""
        rows = normalize(X, norm="l2")
        if X.shape[0] <= WARD_MAX_DOCS:
            labels = AgglomerativeClustering(n_clusters=K, linkage="ward").fit_predict(rows.toarray())
        else:
            labels = MiniBatchKMeans(n_clusters=K, random_state=rs.randint(np.iinfo(np.int32).max),
                                     n_init=10).fit_predict(rows)
        onehot = sparse.csr_matrix((np.ones(X.shape[0]), (labels, np.arange(X.shape[0]))),
                                   shape=(K, X.shape[0]))
        lam = rs.gamma(100.0, 0.01, (K, X.shape[1]))
        return lam + np.asarray((onehot @ X).todense(), dtype=float)

    def _run_em(self, X: sparse.csr_matrix, Xd: np.ndarray, lam: np.ndarray) -> dict:
        K = lam.shape[0]
        coef = np.zeros((Xd.shape[1], K))
        exp_Elog_beta = np.exp(_dirichlet_expectation(lam))

        history = []
        converged = False
        n_iter = 0
        for n_iter in range(1, self.max_em_iter + 1):
            alpha = self._alpha(Xd, coef)
            gamma, sstats = self._e_step(X, alpha, exp_Elog_beta)
            history.append(self._bound(X, gamma, alpha, lam))

            lam = self.topic_word_prior + sstats
            exp_Elog_beta = np.exp(_dirichlet_expectation(lam))
            coef = self._m_step_prevalence(Xd, gamma, coef)

            if len(history) > 1:
                change = abs(history[-1] - history[-2]) / abs(history[-2])
                log.debug("K=%d iter=%d bound=%.4f change=%.2e", K, n_iter, history[-1], change)
                if change < self.em_tol:
                    converged = True
                    break

        alpha = self._alpha(Xd, coef)
        gamma, _ = self._e_step(X, alpha, exp_Elog_beta)
        bound = self._bound(X, gamma, alpha, lam)
        history.append(bound)
        return dict(lam=lam, coef=coef, gamma=gamma, bound=bound, history=history,
                    n_iter=n_iter, converged=converged)

    # public API

    def fit(self, counts, covariate: Optional[Sequence] = None, stage: str = "topic_model"):
        """Run EM from ``n_init`` starts and keep the one with the highest bound.

        Start 0 seeds the topics from a Ward partition of the songs, the rest
        from random pseudo-counts. Each start draws from its own seed derived
        from ``random_state``.
        """
        X = sparse.csr_matrix(counts)
        n_docs, V = X.shape
        K = int(self.n_topics)
        if K < 1:
            raise DegenerateInputError(stage, f"topic count must be positive, got {K}")
        if K >= n_docs:
            raise DegenerateInputError(stage, f"topic count K={K} must be smaller than the {n_docs} songs")
        if V == 0:
            raise DegenerateInputError(stage, "vocabulary is empty")
        empty = np.flatnonzero(np.diff(X.indptr) == 0)
        if empty.size:
            raise DegenerateInputError(stage, f"{empty.size} songs have no terms (rows {empty[:10].tolist()})")
        if covariate is not None and len(covariate) != n_docs:
            raise AlignmentError(stage, f"{len(covariate)} covariate values for {n_docs} songs")
        if self.n_init < 1:
            raise ValueError(f"n_init must be >= 1, got {self.n_init}")

        self.levels_ = (
            sorted(pd.Series(list(covariate), dtype=object).fillna("").astype(str).unique())
            if covariate is not None else []
        )
        self.has_covariate_ = covariate is not None
        Xd = self._design(covariate, n_docs)

        seeds = np.random.RandomState(self.random_state).randint(np.iinfo(np.int32).max, size=self.n_init)
        best = None
        init_bounds = []
        for i, seed in enumerate(seeds):
            rs = np.random.RandomState(seed)
            lam0 = self._partition_init(X, K, rs) if i == 0 else rs.gamma(100.0, 0.01, (K, V))
            res = self._run_em(X, Xd, lam0)
            init_bounds.append(res["bound"])
            log.debug("K=%d start=%d bound=%.4f", K, i, res["bound"])
            if best is None or res["bound"] > best["bound"]:
                best = res
        if not best["converged"]:
            log.warning("EM did not converge for K=%d after %d iterations", K, best["n_iter"])

        lam, gamma = best["lam"], best["gamma"]
        self.n_topics_ = K
        self.n_terms_ = V
        self.components_ = lam
        self.coef_ = best["coef"]
        self.gamma_ = gamma
        self.topic_word_ = lam / lam.sum(axis=1, keepdims=True)
        self.doc_topic_ = gamma / gamma.sum(axis=1, keepdims=True)
        self.bound_ = best["bound"]
        self.bound_history_ = best["history"]
        self.init_bounds_ = init_bounds
        self.n_iter_ = best["n_iter"]
        self.converged_ = best["converged"]
        self.n_tokens_ = float(X.sum())
        return self

    def transform(self, counts, covariate: Optional[Sequence] = None) -> np.ndarray:
        """Topic proportions for songs under the fitted topics and prevalence."""
        X = sparse.csr_matrix(counts)
        if X.shape[1] != self.n_terms_:
            raise AlignmentError("topic_model", f"expected {self.n_terms_} terms, got {X.shape[1]}")
        if self.has_covariate_ and covariate is None:
            raise AlignmentError("topic_model", "model was fit with a prevalence covariate; pass one")
        Xd = self._design(covariate if self.has_covariate_ else None, X.shape[0])
        exp_Elog_beta = np.exp(_dirichlet_expectation(self.components_))
        gamma, _ = self._e_step(X, self._alpha(Xd, self.coef_), exp_Elog_beta)
        return gamma / gamma.sum(axis=1, keepdims=True)

    @property
    def n_params_(self) -> int:
        return self.n_topics_ * (self.n_terms_ - 1) + self.coef_.size

    def aic(self) -> float:
        return -2.0 * self.bound_ + 2.0 * self.n_params_

    def bic(self) -> float:
        return -2.0 * self.bound_ + self.n_params_ * np.log(self.n_tokens_)

    def expected_prevalence(self, levels: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """Model-implied mean topic proportions for each covariate level."""
        if not self.has_covariate_:
            alpha = self._alpha(np.ones((1, 1)), self.coef_)
            return pd.DataFrame(alpha / alpha.sum(axis=1, keepdims=True),
                                index=pd.Index(["(all)"]), columns=topic_columns(self.n_topics_))
        levels = list(self.levels_ if levels is None else levels)
        alpha = self._alpha(self._design(levels, len(levels)), self.coef_)
        return pd.DataFrame(alpha / alpha.sum(axis=1, keepdims=True),
                            index=pd.Index(levels, name="level"), columns=topic_columns(self.n_topics_))


def _fit_one(counts, covariate, k: int, params: dict, stage: str) -> PrevalenceTopicModel:
    return PrevalenceTopicModel(n_topics=k, **params).fit(counts, covariate, stage=stage)


def fit_topic_model(
    counts,
    covariate: Optional[Sequence],
    n_topics: Union[int, str] = config.N_TOPICS,
    k_grid: Sequence[int] = config.K_GRID,
    criterion: str = config.K_CRITERION,
    n_jobs: int = 1,
    stage: str = "topic_model",
    **params,
) -> PrevalenceTopicModel:
    """Fit a fixed-K model, or sweep ``k_grid`` and keep the best by ``criterion``.

    Every candidate uses the same seed, so the sweep gives the same result in
    parallel as sequentially. Ties go to the smaller K. The sweep is kept on
    the returned model as ``selection_``.
    """
    if n_topics != "auto":
        model = PrevalenceTopicModel(n_topics=int(n_topics), **params).fit(counts, covariate, stage=stage)
        model.selection_ = None
        return model

    n_docs = counts.shape[0]
    candidates = sorted({int(k) for k in k_grid if 2 <= int(k) < n_docs})
    if not candidates:
        raise DegenerateInputError(
            stage, f"no candidate topic count in {list(k_grid)} is between 2 and {n_docs - 1}"
        )

    models = Parallel(n_jobs=n_jobs)(
        delayed(_fit_one)(counts, covariate, k, params, stage) for k in candidates
    )
    rows = []
    best = None
    for k, m in zip(candidates, models):
        score = m.bic() if criterion == "bic" else m.aic()
        rows.append({"k": k, "bound": m.bound_, "n_params": m.n_params_,
                     criterion: score, "converged": m.converged_})
        log.info("K=%d bound=%.2f %s=%.2f", k, m.bound_, criterion, score)
        if best is None or score < best[0]:
            best = (score, m)

    model = best[1]
    model.selection_ = pd.DataFrame(rows)
    return model


def document_topics(model: PrevalenceTopicModel, meta: pd.DataFrame) -> pd.DataFrame:
    """Song metadata with one weight column per topic, in topic order."""
    if len(meta) != model.doc_topic_.shape[0]:
        raise AlignmentError("topic_model", f"{len(meta)} metadata rows for {model.doc_topic_.shape[0]} topic rows")
    keep = [c for c in meta.columns if c not in ("lyrics", "clean")]
    weights = pd.DataFrame(model.doc_topic_, columns=topic_columns(model.n_topics_))
    return pd.concat([meta[keep].reset_index(drop=True), weights], axis=1)


def prevalence_table(doc_topics: pd.DataFrame, field: str = config.PREVALENCE_FIELD) -> pd.DataFrame:
    """Observed mean topic weights per level of ``field``."""
    cols = [c for c in doc_topics.columns if c.startswith("topic_")]
    return doc_topics.groupby(field)[cols].mean().sort_index()

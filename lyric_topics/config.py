"""
Configuration defaults for the lyric topic pipeline.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Tuple, Union

import orjson

# Reproducibility
RANDOM_STATE = 0

# Pruning: drop terms used by fewer than ceil(MIN_DF_PROPORTION * n_docs) songs
MIN_DF_PROPORTION = 0.01

# Topic model
N_TOPICS: Union[int, str] = "auto"
K_GRID = tuple(range(3, 11))       # candidates when N_TOPICS == "auto"
K_CRITERION = "bic"                # "bic" | "aic"
PREVALENCE_FIELD = "writer"
MAX_EM_ITER = 100
EM_TOL = 1e-5                      # relative change of the bound
MAX_DOC_ITER = 100
DOC_TOL = 1e-3                     # mean change of gamma per doc
TOPIC_WORD_PRIOR = 0.01            # Dirichlet smoothing on topic-word rows
PREVALENCE_SIGMA = 1.0             # L2 prior scale on prevalence coefficients
N_INIT = 10                        # EM starts per fit, best bound kept

# Labels
LABEL_N = 5
FREX_WEIGHT = 0.5
TOP_SONGS_N = 3

# Clustering
CLUSTER_RANGE = (2, 8)             # inclusive range of K' to sweep
EXTRA_FEATURES: Tuple[str, ...] = ()

# Lemma source: "wordnet" uses nltk's WordNetLemmatizer
LEMMATIZER = "wordnet"

# Fillers and interjections that the standard English list misses
CUSTOM_STOPWORDS = frozenset({
    "oh", "ooh", "ohh", "ah", "ahh", "aah", "uh", "uhh", "huh", "hmm", "mmm",
    "yeah", "yeh", "yea", "ya", "yah", "hey", "whoa", "woah", "wo", "woo",
    "la", "na", "da", "doo", "dum", "ba", "sha", "ha", "haha",
    "gonna", "wanna", "gotta", "ain", "aint", "dont", "doesnt", "didnt",
    "cant", "wont", "im", "ive", "youre", "youve", "youll", "theyre",
    "thats", "whats", "theres", "lets", "em",
    "cause", "cuz",
    "verse", "chorus", "bridge", "intro", "outro", "repeat",
})


@dataclass(frozen=True)
class PipelineConfig:
    custom_stopwords: frozenset = field(default=CUSTOM_STOPWORDS)
    lemmatizer: str = LEMMATIZER
    min_df_proportion: float = MIN_DF_PROPORTION
    n_topics: Union[int, str] = N_TOPICS
    k_grid: Tuple[int, ...] = K_GRID
    k_criterion: str = K_CRITERION
    prevalence_field: str = PREVALENCE_FIELD
    random_state: int = RANDOM_STATE
    cluster_range: Tuple[int, int] = CLUSTER_RANGE
    extra_features: Tuple[str, ...] = EXTRA_FEATURES
    label_n: int = LABEL_N
    top_songs_n: int = TOP_SONGS_N
    max_em_iter: int = MAX_EM_ITER
    em_tol: float = EM_TOL
    n_init: int = N_INIT
    n_jobs: int = 1

    def __post_init__(self):
        if not 0.0 <= self.min_df_proportion <= 1.0:
            raise ValueError(f"min_df_proportion must be in [0, 1], got {self.min_df_proportion}")
        if isinstance(self.n_topics, str) and self.n_topics != "auto":
            raise ValueError(f"n_topics must be an int or 'auto', got {self.n_topics!r}")
        if self.k_criterion not in ("bic", "aic"):
            raise ValueError(f"k_criterion must be 'bic' or 'aic', got {self.k_criterion!r}")
        if self.n_init < 1:
            raise ValueError(f"n_init must be >= 1, got {self.n_init}")
        lo, hi = self.cluster_range
        if lo < 2 or hi < lo:
            raise ValueError(f"cluster_range must satisfy 2 <= lo <= hi, got {self.cluster_range}")

    @classmethod
    def from_json(cls, path) -> "PipelineConfig":
        return cls.from_dict(orjson.loads(Path(path).read_bytes()))

    @classmethod
    def from_dict(cls, raw: dict) -> "PipelineConfig":
        raw = dict(raw)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        if "custom_stopwords" in raw:
            raw["custom_stopwords"] = frozenset(raw["custom_stopwords"])
        for key in ("k_grid", "cluster_range", "extra_features"):
            if key in raw:
                raw[key] = tuple(raw[key])
        return cls(**raw)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["custom_stopwords"] = sorted(self.custom_stopwords)
        d["k_grid"] = list(self.k_grid)
        d["cluster_range"] = list(self.cluster_range)
        d["extra_features"] = list(self.extra_features)
        return d

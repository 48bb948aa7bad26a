"""
Stage artifacts on disk, one folder per run.
"""
from __future__ import annotations

from pathlib import Path

import numpy as np
import orjson
import pandas as pd
from joblib import dump, load
from scipy import sparse

from .vocab import Corpus

DEFAULT_DIR = Path("topic_out")


class ArtifactStore:
    def __init__(self, root=DEFAULT_DIR):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path(self, name: str) -> Path:
        return self.root / name

    # tables

    def save_frame(self, df: pd.DataFrame, name: str) -> Path:
        p = self.path(name)
        if p.suffix == ".csv":
            df.to_csv(p, index=False)
        else:
            df.to_parquet(p, index=False)
        return p

    def load_frame(self, name: str) -> pd.DataFrame:
        p = self.path(name)
        return pd.read_csv(p) if p.suffix == ".csv" else pd.read_parquet(p)

    # corpus (vocab + counts + meta always travel together)

    def save_corpus(self, corpus: Corpus, suffix: str = "") -> None:
        pd.DataFrame({"term": corpus.vocab}).to_csv(self.path(f"vocab{suffix}.csv"), index=False)
        sparse.save_npz(self.path(f"counts{suffix}.npz"), corpus.counts)
        corpus.meta.to_parquet(self.path(f"meta{suffix}.parquet"), index=False)
        dropped = {"dropped_ids": list(corpus.dropped_ids)}
        self.path(f"dropped{suffix}.json").write_bytes(orjson.dumps(dropped))

    def load_corpus(self, suffix: str = "", stage: str = "load") -> Corpus:
        vocab = pd.read_csv(self.path(f"vocab{suffix}.csv"), keep_default_na=False)["term"]
        counts = sparse.load_npz(self.path(f"counts{suffix}.npz")).tocsr()
        meta = pd.read_parquet(self.path(f"meta{suffix}.parquet"))
        dropped = orjson.loads(self.path(f"dropped{suffix}.json").read_bytes())["dropped_ids"]
        corpus = Corpus(
            vocab=vocab.astype(str).to_numpy(dtype=object),
            counts=counts,
            meta=meta,
            dropped_ids=dropped,
        )
        return corpus.validate(stage)

    # arrays and models

    def save_array(self, arr: np.ndarray, name: str) -> Path:
        p = self.path(name)
        np.save(p, arr)
        return p

    def load_array(self, name: str) -> np.ndarray:
        return np.load(self.path(name))

    def save_model(self, model, name: str = "stm.joblib") -> Path:
        p = self.path(name)
        dump(model, p)
        return p

    def load_model(self, name: str = "stm.joblib"):
        return load(self.path(name))

    # manifest

    def update_manifest(self, **entries) -> dict:
        p = self.path("manifest.json")
        manifest = orjson.loads(p.read_bytes()) if p.exists() else {}
        manifest.update(entries)
        p.write_bytes(orjson.dumps(manifest, option=orjson.OPT_INDENT_2 | orjson.OPT_SERIALIZE_NUMPY))
        return manifest

    def manifest(self) -> dict:
        p = self.path("manifest.json")
        return orjson.loads(p.read_bytes()) if p.exists() else {}

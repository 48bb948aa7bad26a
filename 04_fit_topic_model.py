# Fit the topic model with writer as prevalence covariate
# K is fixed or picked from K_GRID by BIC on the variational bound (config n_topics == "auto")

import numpy as np

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.config import PipelineConfig
from lyric_topics.pipeline import topic_stage

OUT = ArtifactStore("topic_out")
cfg = PipelineConfig.from_dict(OUT.manifest().get("config", {}))

corpus = OUT.load_corpus()
print(f"Songs: {corpus.n_docs:,}, terms: {corpus.n_terms:,}, tokens: {int(corpus.counts.sum()):,}")
print(f"Fitting (K={cfg.n_topics}, covariate={cfg.prevalence_field}, seed={cfg.random_state}, starts={cfg.n_init})…")

model, doc_topics = topic_stage(corpus, cfg, store=OUT)

if model.selection_ is not None:
    print("\nK sweep:")
    print(model.selection_.to_string(index=False))
print(f"\nChosen K={model.n_topics_}  bound={model.bound_:,.2f}  "
      f"iterations={model.n_iter_}  converged={model.converged_}")
print(f"Start bounds: {np.round(model.init_bounds_, 2).tolist()}")

# doc-topic rows are distributions
row_sums = doc_topics.filter(like="topic_").sum(axis=1).to_numpy()
print(f"Doc-topic row sums in [{row_sums.min():.6f}, {row_sums.max():.6f}]")
print(f"Largest mean topic share: {np.round(model.doc_topic_.mean(axis=0).max(), 3)}")

print("\nSaved:")
print(" - topic_out/stm.joblib")
print(" - topic_out/topic_word.npy")
print(" - topic_out/doc_topics.parquet")
print(f" - topic_out/prevalence_by_{cfg.prevalence_field}.csv")

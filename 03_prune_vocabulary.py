# Drop rare terms: keep terms used by at least ceil(min_df_proportion * n_songs) songs
# songs left without any term are removed together with their metadata row

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.config import PipelineConfig
from lyric_topics.pipeline import prune_stage

OUT = ArtifactStore("topic_out")
cfg = PipelineConfig.from_dict(OUT.manifest().get("config", {}))

corpus = OUT.load_corpus("_full")
print(f"Before: {corpus.n_docs:,} songs x {corpus.n_terms:,} terms")

pruned = prune_stage(corpus, cfg, store=OUT)
lost = pruned.n_dropped - corpus.n_dropped
print(f"min_df proportion {cfg.min_df_proportion} -> threshold {OUT.manifest()['min_df']} songs")
print(f"After:  {pruned.n_docs:,} songs x {pruned.n_terms:,} terms")
print(f"Songs lost to pruning: {lost}")

print("Saved:")
print(" - topic_out/vocab.csv")
print(" - topic_out/counts.npz")
print(" - topic_out/meta.parquet")

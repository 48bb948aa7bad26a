# Gower dissimilarity on topic weights (+ extra columns), k-medoids over a range of K'
# K' is the one with the best silhouette; ties go to the smaller K'

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.config import PipelineConfig
from lyric_topics.pipeline import cluster_stage

OUT = ArtifactStore("topic_out")
cfg = PipelineConfig.from_dict(OUT.manifest().get("config", {}))

doc_topics = OUT.load_frame("doc_topics.parquet")
print(f"Songs: {len(doc_topics):,}; extra features: {list(cfg.extra_features) or 'none'}")

res = cluster_stage(doc_topics, cfg, store=OUT)

for row in res.sweep.itertuples(index=False):
    print(f"K'={row.k:<3}  silhouette={row.silhouette:0.4f}")
print(f"\nChosen K'={res.k}")

print("\nCluster sizes:")
print(res.songs["cluster"].value_counts().sort_index())
print("\nCluster x writer:")
print(res.songs.groupby(["cluster", "writer"]).size().unstack(fill_value=0))

print("\nSaved:")
print(" - topic_out/dissimilarity.npy")
print(" - topic_out/cluster_sweep.csv")
print(" - topic_out/songs_with_clusters.parquet")

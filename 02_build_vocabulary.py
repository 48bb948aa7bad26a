# Build the vocabulary and song-by-term count matrix from cleaned lyrics
# songs whose cleaned text is empty are dropped here and listed in the manifest

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.pipeline import vocabulary_stage

OUT = ArtifactStore("topic_out")

clean = OUT.load_frame("songs_clean.parquet")
print(f"Songs in: {len(clean):,}")

corpus = vocabulary_stage(clean, store=OUT)
print(f"Counts shape: {corpus.counts.shape}, nnz: {corpus.counts.nnz:,}")
if corpus.n_dropped:
    print(f"Dropped {corpus.n_dropped} empty songs: {', '.join(corpus.dropped_ids[:10])}")

print("Saved:")
print(" - topic_out/vocab_full.csv")
print(" - topic_out/counts_full.npz")
print(" - topic_out/meta_full.parquet")

# Label topics by their top terms (probability, FREX, lift) and list each topic's top songs

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.config import PipelineConfig
from lyric_topics.pipeline import label_stage

OUT = ArtifactStore("topic_out")
cfg = PipelineConfig.from_dict(OUT.manifest().get("config", {}))

corpus = OUT.load_corpus()
model  = OUT.load_model()

labels, top = label_stage(model, corpus, cfg, store=OUT)

for row in labels.itertuples(index=False):
    print(f"Topic {row.topic:<3} {row.label}")
    print(f"          frex: {row.frex}")

print("\nSaved:")
print(" - topic_out/topic_labels.csv")
print(" - topic_out/topic_top_songs.csv")

# Load the scraped songs table and normalise lyrics
# lower-case // strip punctuation // lemmatize // drop standard + custom stop-words

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.config import PipelineConfig
from lyric_topics.pipeline import normalize_stage
from lyric_topics.records import load_songs

IN_PATH  = "songs.ndjson"       # id, lyrics, band, writer, album, year
OUT      = ArtifactStore("topic_out")
CONFIG   = None                 # optional JSON overrides, e.g. "pipeline.json"

cfg = PipelineConfig.from_json(CONFIG) if CONFIG else PipelineConfig()
OUT.update_manifest(config=cfg.to_dict())

print("Loading songs…")
songs = load_songs(IN_PATH)
print(f"Songs: {len(songs):,} from {songs['band'].nunique()} bands, {songs['writer'].nunique()} writers")

print(f"Normalising lyrics (lemmatizer: {cfg.lemmatizer})…")
clean = normalize_stage(songs, cfg, store=OUT)

n_empty = int((clean["clean"] == "").sum())
n_tokens = clean["clean"].str.split().str.len().sum()
print(f"Tokens kept: {n_tokens:,}; songs empty after cleaning: {n_empty}")
print("Saved:")
print(" - topic_out/songs_clean.parquet")

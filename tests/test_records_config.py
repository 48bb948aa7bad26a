import orjson
import pandas as pd
import pytest

from lyric_topics.artifacts import ArtifactStore
from lyric_topics.config import PipelineConfig
from lyric_topics.errors import SchemaError
from lyric_topics.records import Song, load_songs, read_ndjson, validate_songs


def test_load_ndjson(tmp_path, songs):
    p = tmp_path / "songs.ndjson"
    with open(p, "wb") as f:
        for rec in songs.to_dict(orient="records"):
            f.write(orjson.dumps(rec, option=orjson.OPT_APPEND_NEWLINE | orjson.OPT_SERIALIZE_NUMPY))
    df = load_songs(p)
    assert df["id"].tolist() == list("ABCDEF")
    assert str(df["year"].dtype) == "Int64"


def test_load_csv_and_parquet(tmp_path, songs):
    songs.to_csv(tmp_path / "s.csv", index=False)
    songs.to_parquet(tmp_path / "s.parquet", index=False)
    assert len(load_songs(tmp_path / "s.csv")) == 6
    assert len(load_songs(tmp_path / "s.parquet")) == 6
    with pytest.raises(SchemaError):
        load_songs(tmp_path / "s.xlsx")


def test_duplicate_ids_rejected(songs):
    with pytest.raises(SchemaError, match="unique"):
        validate_songs(pd.concat([songs, songs.iloc[:1]]))


def test_missing_values_filled(songs):
    songs.loc[0, "lyrics"] = None
    songs.loc[1, "year"] = None
    df = validate_songs(songs)
    assert df.loc[0, "lyrics"] == ""
    assert pd.isna(df.loc[1, "year"])


def test_ndjson_lines_become_song_records(tmp_path):
    p = tmp_path / "songs.ndjson"
    p.write_bytes(
        orjson.dumps({"id": 7, "lyrics": "la", "band": "b", "writer": "w", "album": "a",
                      "year": "1999", "url": "http://x"}) + b"\n\n"
        + orjson.dumps({"id": "8", "lyrics": None, "band": "b", "writer": "w", "album": "a", "year": None})
    )
    assert read_ndjson(p) == [
        Song(id="7", lyrics="la", band="b", writer="w", album="a", year=1999),
        Song(id="8", lyrics="", band="b", writer="w", album="a"),
    ]
    df = load_songs(p)
    assert "url" not in df.columns
    assert df["year"].isna().tolist() == [False, True]


def test_ndjson_record_missing_field_names_the_line(tmp_path):
    p = tmp_path / "songs.ndjson"
    p.write_bytes(orjson.dumps({"id": "1", "lyrics": "la", "band": "b", "writer": "w", "album": "a"}))
    with pytest.raises(SchemaError, match="line 1.*year"):
        load_songs(p)


def test_validate_accepts_song_records():
    df = validate_songs([Song(id="1", lyrics="la", band="b", writer="w", album="a", year=1999),
                         Song(id="2", lyrics="na", band="b", writer="w", album="a")])
    assert df["id"].tolist() == ["1", "2"]
    assert str(df["year"].dtype) == "Int64"
    with pytest.raises(SchemaError, match="unique"):
        validate_songs([Song(id="1", lyrics="", band="", writer="", album="")] * 2)


def test_config_roundtrip_through_dict(tmp_path):
    cfg = PipelineConfig(n_topics=4, cluster_range=(2, 5), extra_features=("band",))
    p = tmp_path / "cfg.json"
    p.write_bytes(orjson.dumps(cfg.to_dict()))
    assert PipelineConfig.from_json(p) == cfg


def test_config_rejects_bad_values(tmp_path):
    with pytest.raises(ValueError):
        PipelineConfig(n_topics="many")
    with pytest.raises(ValueError):
        PipelineConfig(cluster_range=(1, 4))
    with pytest.raises(ValueError):
        PipelineConfig(min_df_proportion=1.5)
    with pytest.raises(ValueError):
        PipelineConfig(n_init=0)
    p = tmp_path / "cfg.json"
    p.write_bytes(orjson.dumps({"seed": 1}))
    with pytest.raises(ValueError, match="Unknown config keys"):
        PipelineConfig.from_json(p)


def test_corpus_roundtrip(tmp_path, corpus):
    store = ArtifactStore(tmp_path)
    store.save_corpus(corpus, suffix="_full")
    back = store.load_corpus("_full")
    assert back.vocab.tolist() == corpus.vocab.tolist()
    assert (back.counts != corpus.counts).nnz == 0
    assert back.meta["id"].tolist() == corpus.meta["id"].tolist()
    assert back.dropped_ids == corpus.dropped_ids


def test_manifest_merges(tmp_path):
    store = ArtifactStore(tmp_path)
    store.update_manifest(a=1)
    store.update_manifest(b=[1, 2])
    assert store.manifest() == {"a": 1, "b": [1, 2]}

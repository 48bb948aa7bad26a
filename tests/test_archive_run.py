import pytest

from archive_run import archive
from lyric_topics.artifacts import ArtifactStore


def test_archive_copies_artifacts(tmp_path):
    store = ArtifactStore(tmp_path / "topic_out")
    store.update_manifest(n_topics=3, n_clusters=2)
    store.path("topic_labels.csv").write_text("topic,label\n0,river\n")
    store.path("notes.txt").write_text("not an artifact")

    dst = archive(store.root, tmp_path / "outputs")
    assert dst.name.endswith("_K3_C2")
    assert sorted(p.name for p in dst.iterdir()) == ["manifest.json", "topic_labels.csv"]
    assert store.path("topic_labels.csv").exists()


def test_archive_needs_a_manifest(tmp_path):
    with pytest.raises(SystemExit):
        archive(tmp_path / "empty", tmp_path / "outputs")

# archive_run.py
# Snapshot topic_out/ into outputs/YYYYMMDD_HHMMSS_K<k>_C<k'>/ so runs with other
# seeds or thresholds can be compared. Never deletes anything.

from pathlib import Path
from datetime import datetime
import shutil

from lyric_topics.artifacts import ArtifactStore

SRC = Path("topic_out")
DST_ROOT = Path("outputs")

PATTERNS = ["*.npy", "*.npz", "*.joblib", "*.parquet", "*.csv", "*.json"]


def archive(src: Path, dst_root: Path) -> Path:
    if not (Path(src) / "manifest.json").exists():
        raise SystemExit(f"No manifest in {Path(src).resolve()}; run the stages first")
    store = ArtifactStore(src)
    manifest = store.manifest()
    tag = f"K{manifest.get('n_topics', 'x')}_C{manifest.get('n_clusters', 'x')}"
    dst = Path(dst_root) / f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{tag}"
    dst.mkdir(parents=True, exist_ok=True)

    copied = 0
    for pat in PATTERNS:
        for path in sorted(store.root.glob(pat)):
            shutil.copy2(path, dst / path.name)
            copied += 1
    print(f"Archived {copied} files to {dst.resolve()}")
    return dst


if __name__ == "__main__":
    archive(SRC, DST_ROOT)

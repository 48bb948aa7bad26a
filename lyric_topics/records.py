"""
Song records and the songs table every stage hands to the next.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Iterable, List, Optional, Union

import orjson
import pandas as pd

from .errors import SchemaError

REQUIRED_COLUMNS = ("id", "lyrics", "band", "writer", "album", "year")


def _text(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value)


@dataclass(frozen=True)
class Song:
    id: str
    lyrics: str
    band: str
    writer: str
    album: str
    year: Optional[int] = None
    clean: str = ""

    @classmethod
    def from_record(cls, rec: dict, stage: str = "load", where: str = "") -> "Song":
        """Keep the known fields of one upstream record; other keys are ignored."""
        missing = [c for c in REQUIRED_COLUMNS if c not in rec]
        if missing:
            raise SchemaError(stage, f"{where}record is missing fields {missing}")
        year = rec["year"]
        if year is not None:
            year = pd.to_numeric(year, errors="coerce")
        return cls(
            id=str(rec["id"]),
            lyrics=_text(rec["lyrics"]),
            band=_text(rec["band"]),
            writer=_text(rec["writer"]),
            album=_text(rec["album"]),
            year=None if pd.isna(year) else int(year),
            clean=_text(rec.get("clean")),
        )


SONG_FIELDS = tuple(f.name for f in fields(Song))


def songs_to_frame(songs: Iterable[Song]) -> pd.DataFrame:
    return pd.DataFrame([asdict(s) for s in songs], columns=list(SONG_FIELDS))


def validate_songs(songs: Union[pd.DataFrame, Iterable[Song]], stage: str = "load",
                   require_clean: bool = False) -> pd.DataFrame:
    """Check the songs table shape and return a normalised copy.

    Accepts a DataFrame or an iterable of ``Song`` records. Ids become
    strings, lyrics missing values become empty strings and year becomes a
    nullable integer.
    """
    df = songs if isinstance(songs, pd.DataFrame) else songs_to_frame(songs)
    need = REQUIRED_COLUMNS + (("clean",) if require_clean else ())
    missing = [c for c in need if c not in df.columns]
    if missing:
        raise SchemaError(stage, f"songs table is missing columns {missing}")

    out = df.copy()
    out["id"] = out["id"].astype(str)
    dupes = out["id"][out["id"].duplicated()].unique().tolist()
    if dupes:
        raise SchemaError(stage, f"song ids must be unique, duplicated: {dupes[:10]}")

    out["lyrics"] = out["lyrics"].fillna("").astype(str)
    for col in ("band", "writer", "album"):
        out[col] = out[col].fillna("").astype(str)
    out["year"] = pd.to_numeric(out["year"], errors="coerce").astype("Int64")
    if require_clean:
        out["clean"] = out["clean"].fillna("").astype(str)
    return out.reset_index(drop=True)


def read_ndjson(path) -> List[Song]:
    """Stream an NDJSON dump into ``Song`` records, one per non-blank line."""
    songs = []
    with open(path, "rb") as f:
        for lineno, line in enumerate(f, 1):
            if line.strip():
                songs.append(Song.from_record(orjson.loads(line), where=f"line {lineno}: "))
    return songs


def load_songs(path) -> pd.DataFrame:
    """Read the upstream songs table from NDJSON, CSV or parquet."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in (".json", ".ndjson", ".jsonl"):
        df = songs_to_frame(read_ndjson(path))
    elif suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        raise SchemaError("load", f"unsupported songs file type: {path.name}")
    return validate_songs(df, stage="load")

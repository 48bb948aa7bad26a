import pandas as pd
import pytest

from lyric_topics.config import PipelineConfig
from lyric_topics.normalize import Normalizer
from lyric_topics.vocab import build_vocabulary

# surface form -> lemma; every lemma maps to itself
LEMMAS = {
    "rivers": "river",
    "stones": "stone",
    "mountains": "mountain",
    "valleys": "valley",
    "lanterns": "lantern",
    "engines": "engine",
    "bottles": "bottle",
    "rockets": "rocket",
    "planets": "planet",
    "running": "run",
    "ran": "run",
    "river": "river",
}

SHARED = "river stone mountain forest thunder rain valley shadow ember"


def _repeat(words: str, n: int) -> str:
    return " ".join([words] * n)


@pytest.fixture
def lemmas():
    return dict(LEMMAS)


@pytest.fixture
def normalizer(lemmas):
    return Normalizer(lemmatizer=lemmas)


@pytest.fixture
def songs():
    # A and B share nine of ten terms; C, D, E are disjoint from them and each other;
    # F is nothing but stop-words and fillers
    rows = [
        ("A", _repeat(SHARED + " harbor", 4) + " Oh, the Rivers!", "Band1", "Page", "Alpha", 1971),
        ("B", _repeat(SHARED + " meadow", 4) + " and the stones...", "Band1", "Page", "Alpha", 1972),
        ("C", _repeat("engine highway chrome motor diesel garage", 3), "Band2", "Stone", "Beta", 1980),
        ("D", _repeat("whiskey tavern bottle barstool jukebox neon", 3), "Band2", "Reed", "Beta", 1981),
        ("E", _repeat("satellite orbit rocket galaxy comet planet", 3), "Band3", "Bowie", "Gamma", 1990),
        ("F", "Oh yeah, the and la la la! [Chorus] don't you", "Band3", "Bowie", "Gamma", 1991),
    ]
    return pd.DataFrame(rows, columns=["id", "lyrics", "band", "writer", "album", "year"])


@pytest.fixture
def clean_songs(songs, normalizer):
    return normalizer.transform(songs)


@pytest.fixture
def corpus(clean_songs):
    return build_vocabulary(clean_songs)


@pytest.fixture
def cfg():
    return PipelineConfig(n_topics=2, cluster_range=(2, 4), min_df_proportion=0.01)

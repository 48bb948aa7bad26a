import numpy as np
import pandas as pd
import pytest

from lyric_topics import similarity
from lyric_topics.errors import AlignmentError, DegenerateClusteringError
from lyric_topics.similarity import (
    MedoidClustering,
    choose_clusters,
    gower_matrix,
    k_medoids,
    similarity_features,
)

# A and B lean on topic 0, C, D and E on topic 1
THETA = pd.DataFrame(
    {
        "id": list("ABCDE"),
        "band": ["x", "x", "y", "y", "z"],
        "year": [1971, 1972, 1980, 1981, 1990],
        "topic_0": [0.95, 0.93, 0.10, 0.20, 0.05],
        "topic_1": [0.05, 0.07, 0.90, 0.80, 0.95],
    }
)


def test_gower_symmetric_zero_diagonal_unit_range():
    D = gower_matrix(similarity_features(THETA, ["band", "year"]))
    assert D.shape == (5, 5)
    np.testing.assert_allclose(D, D.T)
    np.testing.assert_array_equal(np.diag(D), 0.0)
    assert D.min() >= 0.0 and D.max() <= 1.0


def test_gower_mixed_values():
    df = pd.DataFrame({"num": [0.0, 5.0, 10.0], "cat": ["a", "a", "b"]})
    D = gower_matrix(df)
    # (|0-5|/10 + 0) / 2
    assert D[0, 1] == pytest.approx(0.25)
    # (1 + 1) / 2
    assert D[0, 2] == pytest.approx(1.0)


def test_gower_weights_and_missing_values():
    df = pd.DataFrame({"num": [0.0, np.nan, 10.0], "cat": ["a", "b", "b"]})
    D = gower_matrix(df, weights={"num": 3.0})
    # num is missing for row 1, only cat counts
    assert D[0, 1] == pytest.approx(1.0)
    assert D[1, 2] == pytest.approx(0.0)
    assert D[0, 2] == pytest.approx((3.0 * 1.0 + 1.0) / 4.0)


def test_gower_constant_column_contributes_nothing():
    D = gower_matrix(pd.DataFrame({"num": [1.0, 1.0], "x": [0.0, 1.0]}))
    assert D[0, 1] == pytest.approx(0.5)


def test_similarity_features_unknown_column():
    with pytest.raises(AlignmentError):
        similarity_features(THETA, ["mood"])


def test_k_medoids_separates_groups():
    D = gower_matrix(similarity_features(THETA))
    res = k_medoids(D, 2, random_state=0)
    labels = res.labels
    assert labels[0] == labels[1]
    assert labels[2] == labels[3] == labels[4]
    assert labels[0] != labels[2]


def test_k_medoids_complete_and_reproducible():
    rng = np.random.RandomState(3)
    X = pd.DataFrame(rng.dirichlet(np.ones(4), size=40), columns=[f"topic_{k}" for k in range(4)])
    D = gower_matrix(X)
    for k in (2, 3, 5):
        res = k_medoids(D, k, random_state=7)
        assert res.labels.shape == (40,)
        assert set(res.labels.tolist()) == set(range(k))
        assert res.medoids.size == k
        np.testing.assert_array_equal(res.labels[res.medoids], np.arange(k))
        again = k_medoids(D, k, random_state=7)
        np.testing.assert_array_equal(again.labels, res.labels)
        np.testing.assert_array_equal(again.medoids, res.medoids)


def test_medoids_of_duplicate_rows_keep_their_own_cluster():
    D = np.zeros((3, 3))
    res = k_medoids(D, 2, random_state=0)
    assert set(res.labels.tolist()) == {0, 1}


def test_choose_clusters_sweeps_and_picks_best():
    D = gower_matrix(similarity_features(THETA))
    k, clustering, sweep = choose_clusters(D, (2, 4), random_state=0)
    assert sweep["k"].tolist() == [2, 3, 4]
    assert k == int(sweep.loc[sweep["silhouette"].idxmax(), "k"])
    assert k == 2
    assert clustering.labels[0] == clustering.labels[1]


def _fake_scores(scores):
    def fake(D, k, random_state):
        labels = np.arange(D.shape[0]) % k
        return k, scores[k], MedoidClustering(labels=labels, medoids=np.arange(k), cost=0.0, n_iter=0)
    return fake


def test_ties_go_to_the_smallest_k(monkeypatch):
    monkeypatch.setattr(similarity, "_score_k", _fake_scores({2: 0.3, 3: 0.7, 4: 0.7}))
    k, _, _ = choose_clusters(np.zeros((10, 10)), (2, 4))
    assert k == 3


def test_all_equal_scores_are_reported(monkeypatch):
    monkeypatch.setattr(similarity, "_score_k", _fake_scores({2: 0.4, 3: 0.4}))
    with pytest.raises(DegenerateClusteringError, match="scores silhouette"):
        choose_clusters(np.zeros((10, 10)), (2, 3))


def test_no_viable_cluster_count():
    with pytest.raises(DegenerateClusteringError):
        choose_clusters(np.zeros((3, 3)), (3, 6))


def test_single_viable_cluster_count_in_a_range_is_reported():
    with pytest.raises(DegenerateClusteringError, match="only K'=2"):
        choose_clusters(np.zeros((3, 3)), (2, 5))


def test_fixed_cluster_count():
    D = gower_matrix(similarity_features(THETA))
    k, clustering, sweep = choose_clusters(D, (2, 2))
    assert k == 2 and len(sweep) == 1

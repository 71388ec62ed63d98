"""
Tests for elbow diagnostics and K-means segmentation.
"""

import numpy as np
import pandas as pd
import pytest

from happymoment_segments.clustering import (
    _hartigan_wong, elbow_diagnostics, fit_segments, split_largest_cluster,
)
from happymoment_segments.exceptions import ConfigurationError, NonConvergenceWarning


def three_blobs(seed=0, n=20):
    rng = np.random.default_rng(seed)
    centers = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
    return np.vstack([c + rng.normal(scale=0.5, size=(n, 2)) for c in centers])


@pytest.fixture(scope="module")
def blobs():
    return three_blobs()


def test_recovers_separated_blobs(blobs):
    res = fit_segments(blobs, k=3, n_init=30, seed=1, verbose=False)
    assert sorted(res.member_counts.tolist()) == [20, 20, 20]
    for start in (0, 20, 40):
        assert len(set(res.labels[start:start + 20])) == 1
    assert res.converged


def test_every_row_gets_exactly_one_cluster(blobs):
    res = fit_segments(blobs, k=4, n_init=3, seed=3, verbose=False)
    assert res.labels.shape == (blobs.shape[0],)
    assert set(res.labels.tolist()) <= set(range(4))
    assert res.member_counts.sum() == blobs.shape[0]


def test_same_seed_same_result(blobs):
    a = fit_segments(blobs, k=3, n_init=4, seed=9, verbose=False)
    b = fit_segments(blobs, k=3, n_init=4, seed=9, verbose=False)
    np.testing.assert_array_equal(a.centroids, b.centroids)
    np.testing.assert_array_equal(a.labels, b.labels)


def test_parallel_restarts_match_serial(blobs):
    a = fit_segments(blobs, k=3, n_init=4, seed=9, n_jobs=1, verbose=False)
    b = fit_segments(blobs, k=3, n_init=4, seed=9, n_jobs=2, verbose=False)
    np.testing.assert_array_equal(a.centroids, b.centroids)
    np.testing.assert_array_equal(a.labels, b.labels)


def test_single_cluster_has_no_between_ss(blobs):
    res = fit_segments(blobs, k=1, verbose=False)
    total = ((blobs - blobs.mean(axis=0)) ** 2).sum()
    np.testing.assert_allclose(res.centroids[0], blobs.mean(axis=0))
    assert res.between_ss == pytest.approx(0.0, abs=1e-9)
    assert res.total_within_ss == pytest.approx(total)


def test_elbow_curve_is_monotone(blobs):
    curve = elbow_diagnostics(blobs, k_max=5, n_init=30, seed=42, verbose=False)
    assert curve["k"].tolist() == [1, 2, 3, 4, 5]
    assert (np.diff(curve["total_within_ss"]) <= 1e-9).all()
    assert (np.diff(curve["between_ss"]) >= -1e-9).all()
    assert curve.loc[0, "between_ss"] == pytest.approx(0.0, abs=1e-9)


def unstructured(seed, n=30, d=3):
    return np.random.default_rng(seed).normal(size=(n, d))


@pytest.mark.parametrize("seed", [6, 23, 0, 1, 2, 3, 4, 5])
def test_elbow_curve_is_monotone_on_unstructured_data(seed):
    # one random start per k leaves the curve to the warm start from k - 1
    curve = elbow_diagnostics(unstructured(seed), k_max=8, n_init=1, seed=seed, verbose=False)
    assert curve["k"].tolist() == list(range(1, 9))
    assert (np.diff(curve["total_within_ss"]) <= 1e-9).all()
    assert (np.diff(curve["between_ss"]) >= -1e-9).all()


@pytest.mark.parametrize("algorithm", ["lloyd", "elkan"])
def test_elbow_curve_is_monotone_for_sklearn_variants(algorithm):
    curve = elbow_diagnostics(unstructured(6), k_max=8, algorithm=algorithm, n_init=1,
                              seed=6, verbose=False)
    assert (np.diff(curve["total_within_ss"]) <= 1e-9).all()


def test_split_largest_cluster_lowers_within_ss():
    X = unstructured(0)
    res = fit_segments(X, k=3, n_init=2, seed=0, verbose=False)
    split = split_largest_cluster(X, res.labels, res.k)
    assert set(split.tolist()) == {0, 1, 2, 3}
    assert (split == 3).sum() == 1
    # the point moved out came from the cluster with the largest within SS
    assert res.labels[split == 3][0] == res.within_ss.argmax()
    warm = fit_segments(X, k=4, n_init=1, seed=0, init_labels=split, verbose=False)
    assert warm.total_within_ss < res.total_within_ss


def test_init_labels_must_match_rows_and_k(blobs):
    with pytest.raises(ConfigurationError):
        fit_segments(blobs, k=3, init_labels=np.zeros(5, dtype=int), verbose=False)
    with pytest.raises(ConfigurationError):
        fit_segments(blobs, k=3, init_labels=np.full(blobs.shape[0], 3), verbose=False)


def test_elbow_stops_at_distinct_points():
    X = np.array([[0.0, 1.0], [0.0, 1.0], [5.0, 5.0]])
    curve = elbow_diagnostics(X, k_max=4, n_init=2, verbose=False)
    assert curve["k"].tolist() == [1, 2]


def test_lloyd_variant_and_dataframe_input(blobs):
    X = pd.DataFrame(blobs, columns=["age", "dominant_0"])
    res = fit_segments(X, k=3, algorithm="lloyd", n_init=30, seed=2, verbose=False)
    assert sorted(res.member_counts.tolist()) == [20, 20, 20]
    table = res.cluster_table()
    assert list(table.columns) == ["cluster_id", "member_count", "age", "dominant_0"]


def test_iteration_cap_warns(blobs):
    with pytest.warns(NonConvergenceWarning):
        fit_segments(blobs, k=3, algorithm="lloyd", max_iter=1, n_init=1, verbose=False)


def test_hartigan_wong_single_pass_is_not_converged():
    X = np.array([[0.0], [0.1], [10.0], [10.1]])
    labels, n_iter, converged = _hartigan_wong(X, np.array([0, 1, 0, 1]), 2, max_iter=1)
    assert n_iter == 1
    assert not converged

    labels, _, converged = _hartigan_wong(X, np.array([0, 1, 0, 1]), 2, max_iter=10)
    assert converged
    assert labels[0] == labels[1] != labels[2] == labels[3]


def test_hartigan_wong_iteration_cap_warns():
    X = np.random.default_rng(5).normal(size=(200, 2))
    with pytest.warns(NonConvergenceWarning):
        res = fit_segments(X, k=8, algorithm="hartigan-wong", max_iter=1, n_init=1,
                           seed=5, verbose=False)
    assert not res.converged
    assert res.n_iter == 1


@pytest.mark.parametrize("kwargs", [
    {"k": 0},
    {"k": 61},
    {"algorithm": "macqueen"},
    {"max_iter": 0},
    {"n_init": 0},
])
def test_invalid_settings_rejected(blobs, kwargs):
    with pytest.raises(ConfigurationError):
        fit_segments(blobs, **kwargs, verbose=False)


def test_empty_matrix_rejected():
    with pytest.raises(ConfigurationError):
        fit_segments(np.zeros((0, 3)), k=1, verbose=False)


def test_cancel_event_stops_clustering(blobs):
    import threading
    from happymoment_segments.exceptions import PipelineCancelled

    event = threading.Event()
    event.set()
    with pytest.raises(PipelineCancelled):
        fit_segments(blobs, k=3, n_init=2, cancel_event=event, verbose=False)

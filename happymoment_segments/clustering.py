# Respondent clustering: elbow diagnostics and K-means segmentation
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.cluster import KMeans

from .config import *
from .exceptions import ConfigurationError, NonConvergenceWarning, PipelineCancelled

ALGORITHMS = ("hartigan-wong", "lloyd", "elkan")


@dataclass
class SegmentResult:
    centroids: np.ndarray      # k x n_features
    labels: np.ndarray         # cluster id per row
    member_counts: np.ndarray
    within_ss: np.ndarray      # per cluster
    total_ss: float
    n_iter: int
    converged: bool
    feature_names: Optional[list] = None

    @property
    def k(self) -> int:
        return self.centroids.shape[0]

    @property
    def total_within_ss(self) -> float:
        return float(self.within_ss.sum())

    @property
    def between_ss(self) -> float:
        return float(self.total_ss - self.total_within_ss)

    def cluster_table(self) -> pd.DataFrame:
        """(cluster_id, member_count, one column per centroid coordinate)."""
        names = self.feature_names or [f"x{j}" for j in range(self.centroids.shape[1])]
        df = pd.DataFrame(self.centroids, columns=names)
        df.insert(0, "member_count", self.member_counts)
        df.insert(0, "cluster_id", np.arange(self.k))
        return df

# -------------------------- Sums of squares --------------------------
def _sums_of_squares(X: np.ndarray, labels: np.ndarray, k: int):
    centroids = np.zeros((k, X.shape[1]))
    counts = np.bincount(labels, minlength=k)
    within = np.zeros(k)
    for j in range(k):
        members = X[labels == j]
        if len(members):
            centroids[j] = members.mean(axis=0)
            within[j] = ((members - centroids[j]) ** 2).sum()
    return centroids, counts, within


def _total_ss(X: np.ndarray) -> float:
    return float(((X - X.mean(axis=0)) ** 2).sum())


def _validate(X: np.ndarray, k: int, max_iter: int, n_init: int, algorithm: str):
    if X.ndim != 2 or X.shape[0] == 0 or X.shape[1] == 0:
        raise ConfigurationError(f"cannot cluster an empty feature matrix {X.shape}")
    if not np.isfinite(X).all():
        raise ConfigurationError("feature matrix contains NaN or infinite values")
    if algorithm not in ALGORITHMS:
        raise ConfigurationError(f"algorithm must be one of {ALGORITHMS}, got {algorithm!r}")
    if k < 1:
        raise ConfigurationError(f"k must be >= 1, got {k}")
    if max_iter < 1 or n_init < 1:
        raise ConfigurationError("max_iter and n_init must be >= 1")
    n_distinct = np.unique(X, axis=0).shape[0]
    if k > n_distinct:
        raise ConfigurationError(f"k={k} exceeds the {n_distinct} distinct data points")

# -------------------------- Hartigan-Wong --------------------------
def _hartigan_wong(X: np.ndarray, labels: np.ndarray, k: int, max_iter: int, cancel_event=None):
    """
    Optimal-transfer passes starting from a given assignment.

    A point moves from cluster l to cluster j when
    n_j / (n_j + 1) * d(x, c_j) < n_l / (n_l - 1) * d(x, c_l),
    which strictly lowers the total within-cluster sum of squares.
    Centroids are updated incrementally after each transfer.
    """
    labels = np.array(labels, dtype=int)
    centers, counts, _ = _sums_of_squares(X, labels, k)
    counts = counts.astype(float)

    converged = k == 1
    n_iter = 0
    for n_iter in range(1, max_iter + 1):
        if converged:
            break
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled(f"k-means cancelled at iteration {n_iter}")

        moved = False
        for i in range(X.shape[0]):
            l = labels[i]
            if counts[l] <= 1:
                continue
            d = ((centers - X[i]) ** 2).sum(axis=1)
            remove_cost = counts[l] / (counts[l] - 1.0) * d[l]
            add_cost = counts / (counts + 1.0) * d
            add_cost[l] = np.inf
            j = int(add_cost.argmin())
            if add_cost[j] < remove_cost * (1.0 - 1e-12):
                centers[l] = (centers[l] * counts[l] - X[i]) / (counts[l] - 1.0)
                centers[j] = (centers[j] * counts[j] + X[i]) / (counts[j] + 1.0)
                counts[l] -= 1
                counts[j] += 1
                labels[i] = j
                moved = True
        if not moved:
            converged = True
            break

    return labels, n_iter, converged


def _hartigan_wong_start(X: np.ndarray, k: int, max_iter: int, seed, cancel_event=None):
    """One Hartigan-Wong run from k distinct random data points."""
    rng = np.random.default_rng(seed)
    distinct = np.unique(X, axis=0)
    centers = distinct[rng.choice(distinct.shape[0], size=k, replace=False)].astype(float)

    d2 = ((X[:, None, :] - centers[None, :, :]) ** 2).sum(axis=2)
    return _hartigan_wong(X, d2.argmin(axis=1), k, max_iter, cancel_event)


def split_largest_cluster(X: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    """
    Labels for k + 1 clusters: the point farthest from its centroid in the
    cluster with the largest within SS becomes cluster k on its own.

    The split never raises the total within SS, and lowers it whenever that
    cluster holds two or more distinct points.
    """
    centroids, _, within = _sums_of_squares(X, labels, k)
    l = int(within.argmax())
    members = np.flatnonzero(labels == l)
    d = ((X[members] - centroids[l]) ** 2).sum(axis=1)
    out = np.array(labels, dtype=int)
    out[members[int(d.argmax())]] = k
    return out


def _run_start(X, k, algorithm, max_iter, seed, cancel_event, init_labels=None):
    if cancel_event is not None and cancel_event.is_set():
        raise PipelineCancelled("k-means cancelled before start")
    if algorithm == "hartigan-wong":
        if init_labels is None:
            labels, n_iter, converged = _hartigan_wong_start(X, k, max_iter, seed, cancel_event)
        else:
            labels, n_iter, converged = _hartigan_wong(X, init_labels, k, max_iter, cancel_event)
    else:
        if init_labels is None:
            init = "random"
            # sklearn needs an int seed; derive one from the start's SeedSequence
            rs = int(np.random.default_rng(seed).integers(0, 2**31 - 1))
        else:
            init, rs = _sums_of_squares(X, init_labels, k)[0], 0
        km = KMeans(n_clusters=k, algorithm=algorithm, init=init, n_init=1,
                    max_iter=max_iter, random_state=rs)
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", message="Number of distinct clusters")
            labels = km.fit_predict(X)
        n_iter = int(km.n_iter_)
        converged = n_iter < max_iter
    _, _, within = _sums_of_squares(X, labels, k)
    return labels, float(within.sum()), n_iter, converged


def fit_segments(X, k: int = N_CLUSTERS, algorithm: str = KMEANS_ALGORITHM,
                 max_iter: int = KMEANS_MAX_ITER, n_init: int = KMEANS_N_INIT,
                 seed: int = SEED, n_jobs: int = N_JOBS, cancel_event=None,
                 init_labels=None, verbose: bool = True) -> SegmentResult:
    """
    K-means with n_init independent starts; the start with the lowest total
    within-cluster sum of squares wins (ties go to the earliest start).

    Start seeds are spawned from `seed`, so the result does not depend on
    n_jobs or execution order.

    Args:
        X: Feature matrix (DataFrame or array), one row per respondent
        k: Number of clusters
        algorithm: "hartigan-wong", "lloyd" or "elkan"
        max_iter: Iteration cap per start
        n_init: Number of random starts
        seed: Base random seed
        init_labels: Optional starting assignment, run after the random
            starts as one extra candidate

    Returns:
        SegmentResult
    """
    feature_names = list(X.columns) if isinstance(X, pd.DataFrame) else None
    X = np.asarray(X, dtype=float)
    _validate(X, k, max_iter, n_init, algorithm)
    if init_labels is not None:
        init_labels = np.asarray(init_labels, dtype=int)
        if init_labels.shape != (X.shape[0],) or init_labels.min() < 0 or init_labels.max() >= k:
            raise ConfigurationError(
                f"init_labels must give a cluster id in [0, {k}) for each of the {X.shape[0]} rows")

    seeds = np.random.SeedSequence(seed).spawn(n_init)
    backend = "threading" if cancel_event is not None else "loky"
    runs = Parallel(n_jobs=n_jobs, backend=backend)(
        delayed(_run_start)(X, k, algorithm, max_iter, s, cancel_event) for s in seeds
    )
    if init_labels is not None:
        runs.append(_run_start(X, k, algorithm, max_iter, None, cancel_event, init_labels))

    best = 0
    for i, run in enumerate(runs):
        if run[1] < runs[best][1]:
            best = i
    labels, _, n_iter, converged = runs[best]

    if not converged:
        warnings.warn(f"k-means (k={k}, {algorithm}) did not converge in {max_iter} iterations",
                      NonConvergenceWarning)

    centroids, counts, within = _sums_of_squares(X, labels, k)
    result = SegmentResult(
        centroids=centroids,
        labels=np.asarray(labels, dtype=int),
        member_counts=counts,
        within_ss=within,
        total_ss=_total_ss(X),
        n_iter=n_iter,
        converged=converged,
        feature_names=feature_names,
    )
    if verbose:
        print(f"[kmeans] k={k} within_ss={result.total_within_ss:.3f} "
              f"between_ss={result.between_ss:.3f} sizes={counts.tolist()}")
    return result


def elbow_diagnostics(X, k_max: int = K_MAX, algorithm: str = KMEANS_ALGORITHM,
                      max_iter: int = KMEANS_MAX_ITER, n_init: int = KMEANS_N_INIT,
                      seed: int = SEED, n_jobs: int = N_JOBS, verbose: bool = True) -> pd.DataFrame:
    """
    Within- and between-cluster sums of squares for k = 1..k_max.

    The curve is for elbow inspection; the final k is chosen by the analyst
    and passed to fit_segments. Candidates beyond the number of distinct
    rows are skipped.

    Each k > 1 also runs one start from the k - 1 solution with its
    largest-SS cluster split, so total_within_ss never increases with k.

    Returns:
        pd.DataFrame with columns k, total_within_ss, between_ss
    """
    X = np.asarray(X, dtype=float)
    n_distinct = np.unique(X, axis=0).shape[0] if X.size else 0
    if verbose:
        print(f"[elbow] evaluating k=1..{k_max} on {X.shape[0]:,} respondents")

    curve = []
    prev = None
    for k in range(1, k_max + 1):
        if k > n_distinct and n_distinct:
            if verbose:
                print(f"[elbow] stopping at k={k - 1}: only {n_distinct} distinct points")
            break
        init = split_largest_cluster(X, prev.labels, prev.k) if prev is not None else None
        res = fit_segments(X, k=k, algorithm=algorithm, max_iter=max_iter, n_init=n_init,
                           seed=seed, n_jobs=n_jobs, init_labels=init, verbose=verbose)
        prev = res
        curve.append((k, res.total_within_ss, res.between_ss))
    return pd.DataFrame(curve, columns=["k", "total_within_ss", "between_ss"])

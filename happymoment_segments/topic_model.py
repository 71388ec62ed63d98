# Latent Dirichlet Allocation fitted by collapsed Gibbs sampling
import warnings
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.special import gammaln

from .config import *
from .exceptions import ConfigurationError, NonConvergenceWarning, PipelineCancelled
from .term_matrix import DocumentTermMatrix

SELECTION_RULES = ("best", "mean")


@dataclass
class LDAConfig:
    n_topics: int = N_TOPICS
    alpha: Optional[float] = ALPHA     # None -> 50 / n_topics
    eta: float = ETA
    burn_in: int = BURN_IN
    total_iter: int = TOTAL_ITER       # includes burn-in
    thin: int = THIN
    n_starts: int = N_STARTS
    seeds: Sequence[int] = CHAIN_SEEDS
    selection: str = SAMPLE_SELECTION
    n_jobs: int = N_JOBS

    @property
    def doc_topic_prior(self) -> float:
        return 50.0 / self.n_topics if self.alpha is None else float(self.alpha)

    def validate(self) -> "LDAConfig":
        """Reject invalid sampler settings before any sampling starts."""
        if self.n_topics <= 0:
            raise ConfigurationError(f"n_topics must be positive, got {self.n_topics}")
        if self.burn_in < 0:
            raise ConfigurationError(f"burn_in must be >= 0, got {self.burn_in}")
        if self.burn_in >= self.total_iter:
            raise ConfigurationError(
                f"burn_in ({self.burn_in}) must be smaller than total_iter ({self.total_iter})")
        if self.thin <= 0:
            raise ConfigurationError(f"thin must be positive, got {self.thin}")
        if self.thin > self.total_iter - self.burn_in:
            raise ConfigurationError(
                f"thin ({self.thin}) leaves no sample after burn-in "
                f"({self.total_iter - self.burn_in} sampling iterations)")
        if self.n_starts <= 0:
            raise ConfigurationError(f"n_starts must be positive, got {self.n_starts}")
        if len(self.seeds) < self.n_starts:
            raise ConfigurationError(
                f"{self.n_starts} chains requested but only {len(self.seeds)} seed(s) given")
        if self.doc_topic_prior <= 0 or self.eta <= 0:
            raise ConfigurationError("Dirichlet priors alpha and eta must be positive")
        if self.selection not in SELECTION_RULES:
            raise ConfigurationError(f"selection must be one of {SELECTION_RULES}, got {self.selection!r}")
        return self


class FixedBudget:
    """Convergence check that never fires: chains run their full iteration budget."""

    def __call__(self, iteration: int, log_likelihood: float) -> bool:
        return False


ConvergenceCheck = Callable[[int, float], bool]


@dataclass
class ChainResult:
    seed: int
    beta: np.ndarray
    gamma: np.ndarray
    log_likelihood: float
    trace: List[Tuple[int, float]] = field(default_factory=list)
    n_iter: int = 0
    converged_at: Optional[int] = None


@dataclass
class TopicModelResult:
    """Fitted LDA: beta is topics x terms, gamma is documents x topics."""
    beta: np.ndarray
    gamma: np.ndarray
    vocabulary: List[str]
    log_likelihood: float
    best_chain: int
    chains: List[ChainResult]
    config: LDAConfig

    @property
    def n_topics(self) -> int:
        return self.beta.shape[0]

    @property
    def chain_log_likelihoods(self) -> List[float]:
        return [c.log_likelihood for c in self.chains]

    def beta_table(self) -> pd.DataFrame:
        """Long table (topic_id, term, probability)."""
        k, v = self.beta.shape
        return pd.DataFrame({
            "topic_id": np.repeat(np.arange(k), v),
            "term": np.tile(np.asarray(self.vocabulary, dtype=object), k),
            "probability": self.beta.ravel(),
        })

    def top_terms(self, n: int = TOP_N_TERMS) -> pd.DataFrame:
        """Highest-probability terms per topic as (topic_id, rank, term, probability)."""
        rows = []
        for t in range(self.n_topics):
            # stable sort keeps vocabulary order among equal probabilities
            order = np.argsort(-self.beta[t], kind="stable")[:n]
            for rank, j in enumerate(order, start=1):
                rows.append({"topic_id": t, "rank": rank, "term": self.vocabulary[j],
                             "probability": float(self.beta[t, j])})
        return pd.DataFrame(rows, columns=["topic_id", "rank", "term", "probability"])

# -------------------------- Gibbs sampler --------------------------
def _token_arrays(counts) -> Tuple[np.ndarray, np.ndarray]:
    """Expand a count matrix into parallel (word id, doc id) arrays, one entry per token."""
    csr = counts.tocsr()
    words, docs = [], []
    for d in range(csr.shape[0]):
        start, end = csr.indptr[d], csr.indptr[d + 1]
        reps = csr.data[start:end].astype(np.int64)
        words.append(np.repeat(csr.indices[start:end].astype(np.int64), reps))
        docs.append(np.full(int(reps.sum()), d, dtype=np.int64))
    if not words:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
    return np.concatenate(words), np.concatenate(docs)


def log_likelihood(n_wt: np.ndarray, n_t: np.ndarray, eta: float) -> float:
    """log p(w | z) with the topic-term distributions integrated out."""
    v, k = n_wt.shape
    ll = k * (gammaln(v * eta) - v * gammaln(eta))
    ll += gammaln(n_wt + eta).sum() - gammaln(n_t + v * eta).sum()
    return float(ll)


def _estimates(n_wt, n_t, n_dt, n_d, alpha, eta) -> Tuple[np.ndarray, np.ndarray]:
    v, k = n_wt.shape
    beta = ((n_wt + eta) / (n_t + v * eta)).T
    gamma = (n_dt + alpha) / (n_d[:, None] + k * alpha)
    return beta, gamma


def _sweep(words, docs, z, n_wt, n_dt, n_t, alpha, eta, rng):
    """Resample every token's topic once, in corpus order."""
    k = n_t.shape[0]
    v_eta = n_wt.shape[0] * eta
    u = rng.random(words.shape[0])
    for i in range(words.shape[0]):
        w, d, t = words[i], docs[i], z[i]
        n_wt[w, t] -= 1
        n_dt[d, t] -= 1
        n_t[t] -= 1

        # p(t) ∝ (C_wt[w,t] + η) / (n_t[t] + Vη) * (C_dt[d,t] + α)
        p = (n_wt[w] + eta) / (n_t + v_eta) * (n_dt[d] + alpha)
        c = np.cumsum(p)
        t = min(int(np.searchsorted(c, u[i] * c[-1], side="right")), k - 1)

        z[i] = t
        n_wt[w, t] += 1
        n_dt[d, t] += 1
        n_t[t] += 1


def run_chain(counts, cfg: LDAConfig, seed: int,
              convergence_check: Optional[ConvergenceCheck] = None,
              cancel_event=None) -> ChainResult:
    """
    Run one Gibbs chain to completion.

    Samples are collected every `thin` sweeps after `burn_in`. A supplied
    convergence check is queried after every sweep past burn-in; when it
    fires the current state is collected as well and the chain stops. With the
    "best" rule the collected sample of highest log-likelihood is returned,
    with "mean" the average of all collected samples.
    """
    check = None if isinstance(convergence_check, FixedBudget) else convergence_check
    k, alpha, eta = cfg.n_topics, cfg.doc_topic_prior, cfg.eta
    n_docs, n_terms = counts.shape
    words, docs = _token_arrays(counts)

    rng = np.random.default_rng(seed)
    z = rng.integers(0, k, size=words.shape[0])

    n_wt = np.zeros((n_terms, k), dtype=np.int64)
    n_dt = np.zeros((n_docs, k), dtype=np.int64)
    np.add.at(n_wt, (words, z), 1)
    np.add.at(n_dt, (docs, z), 1)
    n_t = n_wt.sum(axis=0)
    n_d = n_dt.sum(axis=1)

    trace: List[Tuple[int, float]] = []
    best = None
    beta_sum = np.zeros((k, n_terms))
    gamma_sum = np.zeros((n_docs, k))
    converged_at = None
    it = 0

    for it in range(1, cfg.total_iter + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled(f"Gibbs chain seed={seed} cancelled at iteration {it}")

        _sweep(words, docs, z, n_wt, n_dt, n_t, alpha, eta, rng)

        if it <= cfg.burn_in:
            continue
        collect = (it - cfg.burn_in) % cfg.thin == 0
        if not collect and check is None:
            continue

        ll = log_likelihood(n_wt, n_t, eta)
        stop = check is not None and check(it, ll)
        # a chain stopped between collection points keeps its final state as a sample
        if collect or stop:
            trace.append((it, ll))
            beta, gamma = _estimates(n_wt, n_t, n_dt, n_d, alpha, eta)
            if cfg.selection == "best":
                if best is None or ll > best[0]:
                    best = (ll, beta, gamma)
            else:
                beta_sum += beta
                gamma_sum += gamma

        if stop:
            converged_at = it
            break

    if cfg.selection == "best":
        ll, beta, gamma = best
    else:
        n = len(trace)
        beta, gamma = beta_sum / n, gamma_sum / n
        ll = float(np.mean([v for _, v in trace]))

    return ChainResult(seed=seed, beta=beta, gamma=gamma, log_likelihood=ll,
                       trace=trace, n_iter=it, converged_at=converged_at)


def select_chain(chains: Sequence[ChainResult]) -> int:
    """Index of the chain with the highest log-likelihood; ties go to the lowest index."""
    best_i = 0
    for i, c in enumerate(chains):
        if c.log_likelihood > chains[best_i].log_likelihood:
            best_i = i
    return best_i


def fit_lda(dtm: DocumentTermMatrix, config: Optional[LDAConfig] = None,
            convergence_check: Optional[ConvergenceCheck] = None,
            cancel_event=None, verbose: bool = True) -> TopicModelResult:
    """
    Fit LDA with n_starts independent Gibbs chains and keep the best one.

    Chains are independent given their seeds, so running them in parallel
    (n_jobs > 1) gives the same result as running them one after another.
    Each sweep resamples every token in a Python loop, so run time scales with
    total_iter x corpus tokens x n_starts / n_jobs.

    Args:
        dtm: Document-term matrix
        config: Sampler settings, defaults from config.py
        convergence_check: Callable (iteration, log_likelihood) -> bool queried
            after every sweep past burn-in; True ends that chain
        cancel_event: Optional threading.Event checked before every sweep

    Returns:
        TopicModelResult

    Raises:
        ConfigurationError: invalid settings or an empty term matrix
    """
    cfg = (config or LDAConfig()).validate()

    n_docs, n_terms = dtm.shape
    if n_docs == 0 or n_terms == 0 or dtm.counts.sum() == 0:
        raise ConfigurationError(
            f"cannot fit a topic model on an empty document-term matrix ({n_docs} x {n_terms})")

    seeds = list(cfg.seeds)[:cfg.n_starts]
    if verbose:
        print(f"[lda] K={cfg.n_topics} alpha={cfg.doc_topic_prior:.3f} eta={cfg.eta} "
              f"burn_in={cfg.burn_in} total_iter={cfg.total_iter} thin={cfg.thin} chains={len(seeds)}")

    # threads share the caller's cancel event; processes cannot receive it
    backend = "threading" if cancel_event is not None else "loky"
    chains = Parallel(n_jobs=cfg.n_jobs, backend=backend)(
        delayed(run_chain)(dtm.counts, cfg, s, convergence_check, cancel_event) for s in seeds
    )

    check_supplied = not isinstance(convergence_check, (type(None), FixedBudget))
    for i, c in enumerate(chains, start=1):
        if verbose:
            print(f"[lda] chain {i}/{len(chains)} seed={c.seed} loglik={c.log_likelihood:.1f}")
        if check_supplied and c.converged_at is None:
            warnings.warn(
                f"Gibbs chain seed={c.seed} did not report convergence within {cfg.total_iter} iterations",
                NonConvergenceWarning,
            )

    best = select_chain(chains)
    if verbose:
        print(f"[lda] best chain {best + 1} (seed={chains[best].seed})")

    winner = chains[best]
    return TopicModelResult(
        beta=winner.beta,
        gamma=winner.gamma,
        vocabulary=list(dtm.vocabulary),
        log_likelihood=winner.log_likelihood,
        best_chain=best,
        chains=list(chains),
        config=cfg,
    )

"""
Fast Iterative Hard Thresholding (FIHT) for 3-D spectrally sparse signals.

A tensor whose entries are sums of r products of damped complex
exponentials has a rank-r multi-level Hankel lifting. FIHT recovers it from
a subset of its entries by iterating

    1. x[K] <- b + (1 - alpha) x[K]          (gradient step, alpha = N / m)
    2. project the Hankel matrix of x onto rank r, using the tangent space
       of the current factorization (subspace tracking)
    3. fold the rank-r matrix back into a tensor

until the relative change between iterates falls below ``tol``.

Typical usage:
--------------
    from fiht import fiht_3d

    success, iterations, ratio, x = fiht_3d(obs, 32, 32, 16, 5, K, 500, 1e-5)

References:
- Cai, Wang & Wei (2016), "Fast and Provable Algorithms for Spectrally
  Sparse Signal Reconstruction via Low-Rank Hankel Matrix Completion",
  arXiv:1606.01567
"""

import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from fiht.errors import DegenerateRankError
from fiht.planner import plan_hankel
from fiht.strategies import select_strategy
from fiht.utils.validation import validate_observations, validate_rank, validate_shape


@dataclass
class FIHTConfig:
    """
    Configuration for the FIHT solver.

    Parameters
    ----------
    max_iter : int, default=500
        Maximum number of iterations
    tol : float, default=1e-5
        Stop successfully once the relative change between iterates is below tol
    verbose : bool, default=False
        Print the relative change after each iteration
    svd_tol : float, default=0.0
        Tolerance of the initial truncated SVD (0 = machine precision)
    seed : int, default=0
        Seed of the truncated SVD start vector
    warn_on_failure : bool, default=True
        Emit a UserWarning when the run diverges or runs out of iterations
    """

    max_iter: int = 500
    tol: float = 1e-5
    verbose: bool = False
    svd_tol: float = 0.0
    seed: int = 0
    warn_on_failure: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if int(self.max_iter) != self.max_iter or self.max_iter < 1:
            raise ValueError(f"max_iter must be a positive integer, got {self.max_iter}")
        if not np.isfinite(self.tol) or self.tol <= 0:
            raise ValueError(f"tol must be positive, got {self.tol}")
        if self.svd_tol < 0:
            raise ValueError(f"svd_tol must be >= 0, got {self.svd_tol}")
        self.max_iter = int(self.max_iter)


def relative_change(x_new: np.ndarray, x_old: np.ndarray) -> float:
    """
    Frobenius norm of x_new - x_old relative to that of x_old.

    Returns 0 when both tensors vanish and inf when only x_old does.
    """
    diff = np.linalg.norm(x_new - x_old)
    base = np.linalg.norm(x_old)

    if base == 0:
        return 0.0 if diff == 0 else np.inf

    return float(diff / base)


class ConvergenceMonitor:
    """
    Records relative changes and decides when to stop.

    The run stops with status
    - 'converged' once a ratio falls below tol,
    - 'diverged' once a ratio exceeds 1 or is not finite,
    - 'max_iter' after max_iter ratios without either.

    Parameters
    ----------
    max_iter : int
        Size of the history buffer
    tol : float
        Success threshold
    """

    def __init__(self, max_iter: int, tol: float):
        self.max_iter = max_iter
        self.tol = tol
        self._ratios = np.zeros(max_iter)
        self.iterations = 0
        self.status: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status is not None

    @property
    def converged(self) -> bool:
        return self.status == 'converged'

    @property
    def history(self) -> np.ndarray:
        """Ratios of the executed iterations."""
        return self._ratios[:self.iterations].copy()

    def record(self, x_new: np.ndarray, x_old: np.ndarray) -> float:
        if self.done:
            raise RuntimeError(f"Monitor already stopped with status '{self.status}'")

        ratio = relative_change(x_new, x_old)
        self._ratios[self.iterations] = ratio
        self.iterations += 1

        if ratio < self.tol:
            self.status = 'converged'
        elif not np.isfinite(ratio) or ratio > 1:
            self.status = 'diverged'
        elif self.iterations == self.max_iter:
            self.status = 'max_iter'

        return ratio


def data_consistency_step(
    x: np.ndarray, indices: np.ndarray, b: np.ndarray, alpha: float
) -> np.ndarray:
    """
    Gradient step on the sampled entries, x[K] <- b + (1 - alpha) x[K].

    Returns a new tensor; unobserved entries are copied unchanged.
    """
    x_new = x.copy()
    flat = x_new.reshape(-1)
    flat[indices] = b + (1 - alpha) * flat[indices]
    return x_new


def reconstruct(
    obs: np.ndarray,
    shape: Sequence[int],
    rank: int,
    indices: np.ndarray,
    config: Optional[FIHTConfig] = None,
) -> Tuple[np.ndarray, dict]:
    """
    Reconstruct a 3-D spectrally sparse tensor from sampled entries.

    Parameters
    ----------
    obs : np.ndarray
        Observed values, shape (m,)
    shape : sequence of int
        Tensor shape (n1, n2, n3)
    rank : int
        Model order r (number of exponential modes); upper bound for the
        adaptive rank
    indices : np.ndarray
        Unique C-order linear indices of the observed entries, shape (m,)
    config : FIHTConfig, optional
        Solver configuration

    Returns
    -------
    x : np.ndarray
        Reconstructed tensor, complex, shape (n1, n2, n3). On divergence the
        last finite estimate.
    info : dict
        'ratio_history', 'iterations', 'converged', 'diverged', 'status',
        'rank_history' (rank at the start of each iteration), 'final_rank',
        'final_ratio', 'singular_values', 'symmetric'

    Raises
    ------
    ValueError
        If inputs are invalid
    DegenerateRankError
        If all observations are zero or the adaptive rank collapses. The
        exception carries iterations, ratio_history, rank_history and the
        last estimate.

    Examples
    --------
    >>> t = np.arange(5)
    >>> mode = np.exp(2j * np.pi * 0.1 * t)
    >>> x_true = np.einsum('i,j,k->ijk', mode, mode, mode)
    >>> K = np.arange(x_true.size)
    >>> x, info = reconstruct(x_true.ravel(), (5, 5, 5), 1, K)
    >>> info['converged']
    True
    """
    if config is None:
        config = FIHTConfig()

    shape = validate_shape(shape)
    obs, indices = validate_observations(obs, indices, shape)

    plan = plan_hankel(*shape)
    rank = validate_rank(rank, plan)
    strategy = select_strategy(plan, svd_tol=config.svd_tol, seed=config.seed)

    # Initialization via one step hard thresholding
    alpha = plan.size / obs.shape[0]
    b = alpha * obs

    x = np.zeros(shape, dtype=np.complex128)
    x.reshape(-1)[indices] = b

    if not np.any(x):
        raise DegenerateRankError(
            "All observations are zero; the lifted initial guess has no spectrum",
            estimate=x,
        )

    factors = strategy.initial_factorization(x, rank)
    x = strategy.reconstruct(factors)

    monitor = ConvergenceMonitor(config.max_iter, config.tol)
    rank_history = []

    while not monitor.done:
        rank_history.append(factors.rank)
        x_old = x

        x = data_consistency_step(x, indices, b, alpha)
        try:
            factors = strategy.update(x, factors)
        except DegenerateRankError as exc:
            raise DegenerateRankError(
                f"{exc} at iteration {monitor.iterations + 1}",
                iterations=monitor.iterations,
                ratio_history=monitor.history,
                rank_history=rank_history,
                estimate=x_old,
            ) from exc
        x = strategy.reconstruct(factors)

        ratio = monitor.record(x, x_old)

        if config.verbose:
            print(f"Iteration {monitor.iterations:4d}, ratio = {ratio:.10f}")

        if not np.all(np.isfinite(x)):
            x = x_old

    if config.warn_on_failure and monitor.status == 'diverged':
        warnings.warn(
            f"FIHT diverged at iteration {monitor.iterations} "
            f"(relative change {monitor.history[-1]:.3e} > 1). "
            "Returning the last estimate; more samples or a smaller rank may help.",
            UserWarning,
            stacklevel=2,
        )
    elif config.warn_on_failure and monitor.status == 'max_iter':
        warnings.warn(
            f"FIHT did not reach tol={config.tol:g} within {config.max_iter} iterations "
            f"(last relative change {monitor.history[-1]:.3e}).",
            UserWarning,
            stacklevel=2,
        )

    history = monitor.history
    info = {
        'ratio_history': history,
        'iterations': monitor.iterations,
        'converged': monitor.converged,
        'diverged': monitor.status == 'diverged',
        'status': monitor.status,
        'rank_history': rank_history,
        'final_rank': factors.rank,
        'final_ratio': float(history[-1]),
        'singular_values': factors.s.copy(),
        'symmetric': plan.symmetric,
    }

    return x, info


def fiht_3d(
    obs: np.ndarray,
    n1: int,
    n2: int,
    n3: int,
    r: int,
    K: np.ndarray,
    maxit: int = 500,
    tol: float = 1e-5,
    trace: bool = False,
) -> Tuple[bool, int, np.ndarray, np.ndarray]:
    """
    FIHT reconstruction with a flat argument list.

    Parameters
    ----------
    obs : np.ndarray
        Observed samples, shape (m,)
    n1, n2, n3 : int
        Dimensions of the signal to reconstruct
    r : int
        Model order of the signal
    K : np.ndarray
        C-order linear indices of the observed samples, matching obs
    maxit : int, default=500
        Maximum number of iterations
    tol : float, default=1e-5
        Stop once the relative change between iterates falls below tol
    trace : bool, default=False
        Print the relative change after each iteration

    Returns
    -------
    success : bool
        True if the relative change fell below tol within maxit iterations;
        False as well when the spectrum degenerates (e.g. all-zero samples)
    iterations : int
        Number of iterations executed
    ratio : np.ndarray
        Relative change after each executed iteration
    x : np.ndarray
        Reconstructed signal, shape (n1, n2, n3)
    """
    config = FIHTConfig(max_iter=maxit, tol=tol, verbose=trace, warn_on_failure=False)
    try:
        x, info = reconstruct(obs, (n1, n2, n3), r, K, config)
    except DegenerateRankError as exc:
        return False, exc.iterations, exc.ratio_history, exc.estimate
    return info['converged'], info['iterations'], info['ratio_history'], x

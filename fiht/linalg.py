"""
Linear algebra building blocks used by the reconstruction.

- truncated_svd: top singular triplets of a LinearOperator known only through
  forward/adjoint products (ARPACK via scipy.sparse.linalg.svds)
- convolve3d: full linear 3-D convolution (scipy.signal.fftconvolve)
- takagi_phase / symmetrize_phase: phase alignment of singular vector
  pairs of complex symmetric matrices
"""

from typing import Tuple

import numpy as np
from scipy.signal import fftconvolve
from scipy.sparse.linalg import LinearOperator, svds


def truncated_svd(
    operator: LinearOperator,
    rank: int,
    tol: float = 0.0,
    seed: int = 0,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Leading singular triplets of a matrix-free operator.

    ARPACK only computes rank < min(rows, cols) triplets. For a full-rank
    request the operator is materialized column by column and factored
    densely instead.

    Parameters
    ----------
    operator : LinearOperator
        Operator A of shape (rows, cols) supporting matvec/rmatvec
    rank : int
        Number of triplets, 1 <= rank <= min(rows, cols)
    tol : float, default=0.0
        ARPACK relative tolerance; 0 means machine precision
    seed : int, default=0
        Seed of the Krylov start vector, fixed so that runs are repeatable

    Returns
    -------
    U : np.ndarray
        Left singular vectors, shape (rows, rank)
    s : np.ndarray
        Singular values, shape (rank,), descending
    V : np.ndarray
        Right singular vectors, shape (cols, rank)

    Raises
    ------
    ValueError
        If rank is out of range
    """
    rows, cols = operator.shape
    if rank < 1 or rank > min(rows, cols):
        raise ValueError(
            f"rank must satisfy 1 <= rank <= min(rows, cols) = {min(rows, cols)}, got {rank}"
        )

    if rank == min(rows, cols):
        dense = operator.matmat(np.eye(cols, dtype=np.complex128))
        U, s, Vh = np.linalg.svd(dense, full_matrices=False)
        return U[:, :rank], s[:rank], Vh[:rank].conj().T

    rng = np.random.default_rng(seed)
    v0 = rng.uniform(size=min(rows, cols))

    U, s, Vh = svds(operator, k=rank, tol=tol, v0=v0)

    # ARPACK returns ascending singular values
    order = np.argsort(s, kind='stable')[::-1]
    return U[:, order], s[order], Vh[order].conj().T


def convolve3d(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Full 3-D linear convolution, shape a.shape + b.shape - 1.

    Examples
    --------
    >>> convolve3d(np.ones((2, 2, 2)), np.ones((3, 3, 3))).shape
    (4, 4, 4)
    """
    return fftconvolve(a, b, mode='full')


def takagi_phase(U: np.ndarray, V: np.ndarray) -> np.ndarray:
    """
    Per-column phase theta with V[:, j] = exp(1j * theta_j) * conj(U[:, j]).

    For a complex symmetric matrix the right singular vectors are, up to a
    phase, the conjugates of the left ones. Summing U * V down each column
    gives exp(1j * theta) * ||u||^2 without relying on any single entry.
    """
    return np.angle(np.sum(U * V, axis=0))


def symmetrize_phase(U: np.ndarray, V: np.ndarray) -> np.ndarray:
    """
    Rotate the columns of U so that U diag(s) V^H == U' diag(s) U'^T.

    Parameters
    ----------
    U : np.ndarray
        Left singular vectors, shape (l, r)
    V : np.ndarray
        Matching right singular vectors, shape (l, r)

    Returns
    -------
    U_sym : np.ndarray
        Phase corrected left vectors; conj(U_sym) is the right basis
    """
    return U * np.exp(-0.5j * takagi_phase(U, V))

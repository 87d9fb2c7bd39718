"""
Low-rank factorization strategies for the two parity cases.

All axes odd (symmetric case):
    p == q and the Hankel matrix is complex symmetric, H = H^T. Its SVD can
    be written H = U diag(s) U^T, so only U is tracked and the right basis
    is conj(U).

At least one axis even (general case):
    H is rectangular (l1 != l2) and both bases U (l1 x r) and V (l2 x r)
    are tracked, H ~ U diag(s) V^H.

Both strategies expose the same three steps:
- initial_factorization: rank-r truncated SVD of the lifted initial guess
- update: one subspace-tracking step (QR of the residual + dense SVD of a
  block matrix of size at most 2r x 2r) with rank adaptation
- reconstruct: fold the factorization back into a tensor

References:
- Cai, Wang & Wei (2016), "Fast and Provable Algorithms for Spectrally
  Sparse Signal Reconstruction via Low-Rank Hankel Matrix Completion"
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np

from fiht.errors import DegenerateRankError
from fiht.hankel import HankelOperator, fold_low_rank
from fiht.linalg import symmetrize_phase, truncated_svd
from fiht.planner import HankelPlan


@dataclass
class LowRankFactors:
    """
    Low-rank factorization of the lifted estimate.

    Attributes
    ----------
    U : np.ndarray
        Orthonormal left basis, shape (l1, r)
    s : np.ndarray
        Singular values, shape (r,), descending
    V : np.ndarray or None
        Orthonormal right basis, shape (l2, r); None in the symmetric case
    """

    U: np.ndarray
    s: np.ndarray
    V: Optional[np.ndarray] = None

    @property
    def rank(self) -> int:
        return int(self.s.shape[0])


def adapt_rank(s: np.ndarray, epsilon: float) -> int:
    """
    Drop trailing singular values that carry negligible energy.

    The trailing values are accumulated from the smallest upwards; every
    value whose running sum, relative to sum(s), stays below ``epsilon`` is
    removed.

    Parameters
    ----------
    s : np.ndarray
        Retained singular values, descending
    epsilon : float
        Relative energy threshold

    Returns
    -------
    rank : int
        New rank, 1 <= rank <= len(s)

    Raises
    ------
    DegenerateRankError
        If the spectrum is zero (or not finite) or nothing survives

    Examples
    --------
    >>> adapt_rank(np.array([1.0, 1e-20, 0.0]), 1e-13)
    1
    >>> adapt_rank(np.array([1.0, 0.5]), 1e-13)
    2
    """
    total = np.sum(s)
    if not np.isfinite(total) or total <= 0:
        raise DegenerateRankError(f"Singular spectrum is degenerate (sum={total})")

    tail = np.cumsum(s[::-1]) / total
    rank = s.shape[0] - int(np.count_nonzero(tail < epsilon))

    if rank < 1:
        raise DegenerateRankError("Rank adaptation removed every singular value")

    return rank


class FactorizationStrategy(Protocol):
    """Strategy interface for one parity case of the Hankel lifting."""

    plan: HankelPlan

    def initial_factorization(self, x: np.ndarray, rank: int) -> LowRankFactors:
        """Rank-r truncated SVD of the Hankel matrix of x."""
        ...

    def update(self, x: np.ndarray, factors: LowRankFactors) -> LowRankFactors:
        """One subspace-tracking step against the Hankel matrix of x."""
        ...

    def reconstruct(self, factors: LowRankFactors) -> np.ndarray:
        """Fold the factorization back into a tensor of shape plan.shape."""
        ...


class SymmetricStrategy:
    """
    Strategy for tensors with all dimensions odd.

    The tracked basis U is normalized so that H ~ U diag(s) U^T, which
    keeps the implicit right basis conj(U) consistent from one iteration
    to the next.
    """

    def __init__(self, plan: HankelPlan, svd_tol: float = 0.0, seed: int = 0):
        if not plan.symmetric:
            raise ValueError(f"SymmetricStrategy needs all dimensions odd, got {plan.shape}")
        self.plan = plan
        self.svd_tol = svd_tol
        self.seed = seed

    def initial_factorization(self, x: np.ndarray, rank: int) -> LowRankFactors:
        op = HankelOperator(x, self.plan)
        U, s, V = truncated_svd(
            op.aslinearoperator(), rank, tol=self.svd_tol, seed=self.seed
        )
        return LowRankFactors(U=symmetrize_phase(U, V), s=s)

    def update(self, x: np.ndarray, factors: LowRankFactors) -> LowRankFactors:
        U = factors.U
        r = factors.rank
        op = HankelOperator(x, self.plan)

        HU = op.forward(np.conj(U))
        C = U.conj().T @ HU
        X = HU - U @ C

        Q, R = np.linalg.qr(X)
        k = R.shape[0]

        # [U Q]^H H conj([U Q]) with the Q^H H conj(Q) block dropped
        M = np.block([[C, R.T], [R, np.zeros((k, k))]])
        Uc, S, Vh = np.linalg.svd(M)

        r = adapt_rank(S[:r], self.plan.epsilon)
        Uc = symmetrize_phase(Uc[:, :r], Vh[:r].conj().T)

        U = np.hstack([U, Q]) @ Uc
        return LowRankFactors(U=U, s=S[:r].copy())

    def reconstruct(self, factors: LowRankFactors) -> np.ndarray:
        return fold_low_rank(factors.U, factors.s, np.conj(factors.U), self.plan)


class GeneralStrategy:
    """Strategy for tensors with at least one even dimension."""

    def __init__(self, plan: HankelPlan, svd_tol: float = 0.0, seed: int = 0):
        self.plan = plan
        self.svd_tol = svd_tol
        self.seed = seed

    def initial_factorization(self, x: np.ndarray, rank: int) -> LowRankFactors:
        op = HankelOperator(x, self.plan)
        U, s, V = truncated_svd(
            op.aslinearoperator(), rank, tol=self.svd_tol, seed=self.seed
        )
        return LowRankFactors(U=U, s=s, V=V)

    def update(self, x: np.ndarray, factors: LowRankFactors) -> LowRankFactors:
        U, V = factors.U, factors.V
        r = factors.rank
        op = HankelOperator(x, self.plan)

        HtU = op.adjoint(U)  # H^H U, (l2, r)
        HV = op.forward(V)  # H V, (l1, r)

        C = HtU.conj().T @ V
        X = HtU - V @ C.conj().T
        Y = HV - U @ C

        Q1, R1 = np.linalg.qr(X)
        Q2, R2 = np.linalg.qr(Y)

        M = np.block([
            [C, R1.conj().T],
            [R2, np.zeros((R2.shape[0], R1.shape[0]))],
        ])
        Uc, S, Vh = np.linalg.svd(M)

        r = adapt_rank(S[:r], self.plan.epsilon)

        U = np.hstack([U, Q2]) @ Uc[:, :r]
        V = np.hstack([V, Q1]) @ Vh[:r].conj().T
        return LowRankFactors(U=U, s=S[:r].copy(), V=V)

    def reconstruct(self, factors: LowRankFactors) -> np.ndarray:
        return fold_low_rank(factors.U, factors.s, factors.V, self.plan)


def select_strategy(plan: HankelPlan, svd_tol: float = 0.0, seed: int = 0) -> FactorizationStrategy:
    """
    Pick the strategy matching the parity of the tensor dimensions.

    Examples
    --------
    >>> from fiht.planner import plan_hankel
    >>> type(select_strategy(plan_hankel(3, 5, 7))).__name__
    'SymmetricStrategy'
    >>> type(select_strategy(plan_hankel(4, 5, 7))).__name__
    'GeneralStrategy'
    """
    if plan.symmetric:
        return SymmetricStrategy(plan, svd_tol=svd_tol, seed=seed)
    return GeneralStrategy(plan, svd_tol=svd_tol, seed=seed)

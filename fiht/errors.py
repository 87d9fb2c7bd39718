"""
Exceptions raised by the reconstruction.

Invalid arguments raise ValueError. Divergence and non-convergence are not
exceptions: they are reported through the returned ``info`` dict.
"""

from typing import Optional

import numpy as np


class FIHTError(RuntimeError):
    """Base class for unrecoverable failures of a reconstruction run."""


class DegenerateRankError(FIHTError):
    """
    The adaptive rank collapsed to zero or the retained spectrum vanished.

    When raised from a solver run the state reached so far is attached.

    Attributes
    ----------
    iterations : int
        Iterations completed before the failure
    ratio_history : np.ndarray
        Relative changes of the completed iterations, shape (iterations,)
    rank_history : list of int
        Rank at the start of each attempted iteration
    estimate : np.ndarray or None
        Last finite estimate of the tensor
    """

    def __init__(
        self,
        message: str,
        iterations: int = 0,
        ratio_history: Optional[np.ndarray] = None,
        rank_history: Optional[list] = None,
        estimate: Optional[np.ndarray] = None,
    ):
        super().__init__(message)
        self.iterations = iterations
        self.ratio_history = np.zeros(0) if ratio_history is None else ratio_history
        self.rank_history = [] if rank_history is None else rank_history
        self.estimate = estimate

"""
FIHT reconstructor: estimator-style API around ``fiht.solver.reconstruct``.

Typical usage:
--------------
    from fiht.models import FIHTReconstructor

    model = FIHTReconstructor(shape=(32, 32, 16), rank=5)
    model.fit(obs, K)
    x = model.signal_
    missing = model.sample(unobserved_indices)
"""

from typing import Dict, Optional, Sequence

import numpy as np

from fiht.solver import FIHTConfig, reconstruct
from fiht.utils.validation import validate_shape


class FIHTReconstructor:
    """
    Spectrally sparse tensor completion with a fixed shape and model order.

    Attributes
    ----------
    shape : tuple of int
        Tensor shape (n1, n2, n3)
    rank : int
        Model order r (initial rank)
    config : FIHTConfig
        Solver configuration
    is_fitted : bool
        Whether fit() has run
    signal_ : np.ndarray or None
        Reconstructed tensor (set after fit())
    fit_info_ : dict or None
        Solver information (ratio history, status, rank history, ...)

    Examples
    --------
    >>> model = FIHTReconstructor(shape=(5, 5, 5), rank=1)
    >>> model.is_fitted
    False
    """

    def __init__(
        self,
        shape: Sequence[int],
        rank: int,
        config: Optional[FIHTConfig] = None
    ):
        """
        Initialize the reconstructor.

        Raises
        ------
        ValueError
            If shape or rank is invalid
        """
        self.shape = validate_shape(shape)
        if int(rank) != rank or rank < 1:
            raise ValueError(f"rank must be a positive integer, got {rank}")

        self.rank = int(rank)
        self.config = config or FIHTConfig()

        self.signal_: Optional[np.ndarray] = None
        self.fit_info_: Optional[Dict] = None

    @property
    def is_fitted(self) -> bool:
        return self.signal_ is not None

    @property
    def success_(self) -> bool:
        self._check_fitted()
        return self.fit_info_['converged']

    @property
    def rank_(self) -> int:
        """Rank after adaptation."""
        self._check_fitted()
        return self.fit_info_['final_rank']

    def fit(self, obs: np.ndarray, indices: np.ndarray) -> 'FIHTReconstructor':
        """
        Reconstruct the tensor from observed entries.

        Parameters
        ----------
        obs : np.ndarray
            Observed values, shape (m,)
        indices : np.ndarray
            C-order linear indices of the observations, shape (m,)

        Returns
        -------
        self : FIHTReconstructor
        """
        x, info = reconstruct(obs, self.shape, self.rank, indices, self.config)
        self.signal_ = x
        self.fit_info_ = info
        return self

    def sample(self, indices: np.ndarray) -> np.ndarray:
        """Values of the reconstructed tensor at C-order linear indices."""
        self._check_fitted()
        return self.signal_.reshape(-1)[np.asarray(indices)]

    def _check_fitted(self):
        if not self.is_fitted:
            raise RuntimeError("Model not fitted. Call fit() first.")

    def __repr__(self) -> str:
        status = self.fit_info_['status'] if self.is_fitted else 'not fitted'
        return f"FIHTReconstructor(shape={self.shape}, rank={self.rank}, {status})"

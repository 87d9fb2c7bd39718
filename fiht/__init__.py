"""
Fast iterative hard thresholding for 3-D spectrally sparse signals.

This package reconstructs a tensor whose entries are a sum of r damped
complex exponentials per axis from a small subset of its entries, by
low-rank completion of its multi-level Hankel lifting.

Features:
---------
- Matrix-free Hankel operator (FFT based, never materializes the matrix)
- Symmetric (all-odd) and general (some even dimension) liftings
- Subspace-tracking rank-r projection with adaptive rank
- Convergence / divergence monitoring with full ratio history

Typical usage:
--------------
    from fiht import fiht_3d, reconstruct, FIHTConfig

    success, iterations, ratio, x = fiht_3d(obs, 32, 32, 16, 5, K, 500, 1e-5)

    x, info = reconstruct(obs, (32, 32, 16), 5, K, FIHTConfig(tol=1e-8))
    print(info['status'], info['rank_history'][-1])

Indices K are C-order (row-major) linear indices into the tensor.
"""

from fiht.errors import DegenerateRankError, FIHTError
from fiht.hankel import HankelOperator, fold_low_rank, hankel_multiply
from fiht.models import FIHTReconstructor
from fiht.planner import HankelPlan, multiplicity_tensor, plan_hankel
from fiht.solver import (
    ConvergenceMonitor,
    FIHTConfig,
    fiht_3d,
    reconstruct,
    relative_change,
)
from fiht.strategies import (
    GeneralStrategy,
    LowRankFactors,
    SymmetricStrategy,
    select_strategy,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "fiht_3d",
    "reconstruct",
    "FIHTConfig",
    "FIHTReconstructor",
    # Geometry and operator
    "HankelPlan",
    "plan_hankel",
    "multiplicity_tensor",
    "HankelOperator",
    "hankel_multiply",
    "fold_low_rank",
    # Strategies
    "LowRankFactors",
    "SymmetricStrategy",
    "GeneralStrategy",
    "select_strategy",
    # Monitoring
    "ConvergenceMonitor",
    "relative_change",
    # Errors
    "FIHTError",
    "DegenerateRankError",
]

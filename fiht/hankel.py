"""
Matrix-free multi-level Hankel operator.

The Hankel matrix of a tensor x (see ``fiht.planner``) has l1 * l2 entries,
far more than the n1 * n2 * n3 entries of x, so it is never built. A
product with it is a correlation of z against x:

    (H z)[a] = sum_b x[a + b] z[b]

which is evaluated as a circular FFT convolution of x with the flipped,
zero-padded block of z. Since every a + b stays inside [0, n), no
wrap-around term survives in the gathered block.

Two roles are used:
- forward:  z has length l2 (q-shaped), result has length l1, source
  block ind1 and target block ind2
- adjoint:  H^H z, same construction on conj(x) with the p-shaped block
  as source and the q-shaped block as target
"""

from typing import Tuple

import numpy as np
from scipy import fft
from scipy.sparse.linalg import LinearOperator

from fiht.linalg import convolve3d
from fiht.planner import HankelPlan, Shape3


def _lifted_product(
    tensor_fft: np.ndarray,
    z: np.ndarray,
    block_shape: Shape3,
    source_index: np.ndarray,
    target_index: np.ndarray,
) -> np.ndarray:
    """
    Hankel product given the precomputed FFT of the tensor.

    Accepts a single vector (length prod(block_shape)) or a matrix whose
    columns are such vectors; all columns are transformed in one batched
    FFT.
    """
    shape = tensor_fft.shape
    z = np.asarray(z)
    single = z.ndim == 1
    Z = z[:, np.newaxis] if single else z

    block_size = int(np.prod(block_shape))
    if Z.shape[0] != block_size:
        raise ValueError(
            f"Input has {Z.shape[0]} rows, expected {block_size} for block shape {tuple(block_shape)}"
        )

    k = Z.shape[1]
    flipped = Z.T.reshape((k,) + tuple(block_shape))[:, ::-1, ::-1, ::-1]

    padded = np.zeros((k, tensor_fft.size), dtype=np.complex128)
    padded[:, source_index] = flipped.reshape(k, block_size)
    padded = padded.reshape((k,) + shape)

    axes = (1, 2, 3)
    conv = fft.ifftn(fft.fftn(padded, axes=axes) * tensor_fft, axes=axes)
    Y = conv.reshape(k, -1)[:, target_index].T

    return Y[:, 0] if single else Y


def hankel_multiply(
    tensor: np.ndarray,
    z: np.ndarray,
    block_shape: Shape3,
    source_index: np.ndarray,
    target_index: np.ndarray,
) -> np.ndarray:
    """
    Multiply the Hankel matrix of ``tensor`` by ``z`` without forming it.

    Parameters
    ----------
    tensor : np.ndarray
        Tensor whose lifting is applied, shape (n1, n2, n3). Pass
        ``np.conj(x)`` together with the adjoint index maps for H^H.
    z : np.ndarray
        Vector of length prod(block_shape), or matrix of such columns
    block_shape : tuple of int
        Shape of the block z lives on (q for forward, p for adjoint)
    source_index : np.ndarray
        Index map of that block anchored at the origin
    target_index : np.ndarray
        Index map of the output block

    Returns
    -------
    y : np.ndarray
        Complex vector (or matrix) of length len(target_index)

    Examples
    --------
    >>> from fiht.planner import plan_hankel
    >>> plan = plan_hankel(3, 3, 3)
    >>> x = np.ones((3, 3, 3))
    >>> y = hankel_multiply(x, np.ones(plan.l2), plan.q, plan.ind1, plan.ind2)
    >>> np.allclose(y, plan.l2)
    True
    """
    return _lifted_product(fft.fftn(tensor), z, block_shape, source_index, target_index)


def fold_low_rank(
    U: np.ndarray, s: np.ndarray, V: np.ndarray, plan: HankelPlan
) -> np.ndarray:
    """
    Fold a low-rank Hankel matrix U diag(s) V^H back into a tensor.

    Each rank-one term u v^H contributes conv(u, conj(v)) (the sums along
    its block anti-diagonals); dividing by DD averages the entries that
    share a tensor coordinate.

    Parameters
    ----------
    U : np.ndarray
        Left factors, shape (l1, r)
    s : np.ndarray
        Singular values, shape (r,)
    V : np.ndarray
        Right factors, shape (l2, r)
    plan : HankelPlan

    Returns
    -------
    x : np.ndarray
        Complex tensor of shape plan.shape
    """
    x = np.zeros(plan.shape, dtype=np.complex128)
    for i in range(s.shape[0]):
        ui = U[:, i].reshape(plan.p)
        vi = V[:, i].reshape(plan.q)
        x = x + s[i] * convolve3d(ui, np.conj(vi))

    return x / plan.dd


class HankelOperator:
    """
    Forward/adjoint products with the Hankel matrix of a fixed tensor.

    The operator owns a snapshot of the tensor (and the FFTs of the tensor
    and of its conjugate), so later changes to the caller's array do not
    affect it. A new operator is built for every iterate.

    Parameters
    ----------
    tensor : np.ndarray
        Tensor of shape plan.shape
    plan : HankelPlan
        Geometry of the lifting

    Examples
    --------
    >>> from fiht.planner import plan_hankel
    >>> plan = plan_hankel(4, 3, 3)
    >>> op = HankelOperator(np.random.randn(4, 3, 3), plan)
    >>> op.shape
    (8, 12)
    """

    def __init__(self, tensor: np.ndarray, plan: HankelPlan):
        tensor = np.asarray(tensor)
        if tensor.shape != plan.shape:
            raise ValueError(
                f"Tensor shape {tensor.shape} does not match plan shape {plan.shape}"
            )

        self.plan = plan
        self.tensor = np.array(tensor, dtype=np.complex128)
        self._fft = fft.fftn(self.tensor)
        self._fft_conj = fft.fftn(np.conj(self.tensor))

    @property
    def shape(self) -> Tuple[int, int]:
        """Hankel matrix shape (l1, l2)."""
        return self.plan.l1, self.plan.l2

    def forward(self, z: np.ndarray) -> np.ndarray:
        """H z for z of length l2 (or l2 x k)."""
        plan = self.plan
        return _lifted_product(self._fft, z, plan.q, plan.ind1, plan.ind2)

    def adjoint(self, z: np.ndarray) -> np.ndarray:
        """H^H z for z of length l1 (or l1 x k)."""
        plan = self.plan
        return _lifted_product(
            self._fft_conj, z, plan.p, plan.adjoint_source, plan.adjoint_target
        )

    def to_dense(self) -> np.ndarray:
        """
        Materialize the Hankel matrix, shape (l1, l2).

        Only meant for small tensors (tests, diagnostics).
        """
        plan = self.plan
        rows = np.indices(plan.p).reshape(3, -1)
        cols = np.indices(plan.q).reshape(3, -1)
        coords = rows[:, :, np.newaxis] + cols[:, np.newaxis, :]
        flat = np.ravel_multi_index(tuple(coords), plan.shape)
        return self.tensor.ravel()[flat]

    def aslinearoperator(self) -> LinearOperator:
        """SciPy LinearOperator view of the Hankel matrix."""
        return LinearOperator(
            shape=self.shape,
            matvec=self.forward,
            rmatvec=self.adjoint,
            matmat=self.forward,
            rmatmat=self.adjoint,
            dtype=np.complex128,
        )

    def __repr__(self) -> str:
        return f"HankelOperator(shape={self.shape}, tensor_shape={self.plan.shape})"

"""Shared fixtures: spectrally sparse test signals."""

import numpy as np
import pytest


def make_spectral_signal(shape, frequencies, amplitudes, damping=None):
    """
    Sum of products of damped complex exponentials.

    x[t1, t2, t3] = sum_k a_k prod_d exp((2j pi f_kd - tau_kd) t_d)

    Parameters
    ----------
    shape : tuple of int
        (n1, n2, n3)
    frequencies : list of 3-tuples
        Normalized frequency of each mode along each axis
    amplitudes : list of complex
        Mode amplitudes
    damping : list of 3-tuples, optional
        Damping factors (default 0)
    """
    if damping is None:
        damping = [(0.0, 0.0, 0.0)] * len(frequencies)

    x = np.zeros(shape, dtype=np.complex128)
    for f, a, tau in zip(frequencies, amplitudes, damping):
        factors = [
            np.exp((2j * np.pi * f[d] - tau[d]) * np.arange(n))
            for d, n in enumerate(shape)
        ]
        x += a * np.einsum('i,j,k->ijk', *factors)

    return x


@pytest.fixture
def spectral_signal():
    """Factory fixture returning make_spectral_signal."""
    return make_spectral_signal

"""
Tests for the FIHT solver.

These tests verify:
1. Configuration validation
2. Convergence monitor decisions and history bookkeeping
3. Exact recovery of fully sampled low-rank signals (both parity cases)
4. Rank adaptation when the model order is overestimated
5. Recovery from partial samples
6. Failure modes: too few samples, iteration budget, degenerate spectrum
7. Determinism and trace output
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from fiht.errors import DegenerateRankError
from fiht.solver import (
    ConvergenceMonitor,
    FIHTConfig,
    data_consistency_step,
    fiht_3d,
    reconstruct,
    relative_change,
)
from fiht.strategies import GeneralStrategy


def relative_error(x, x_true):
    return np.linalg.norm(x - x_true) / np.linalg.norm(x_true)


def sample(x, fraction, seed=0):
    """Random subset of C-order linear indices and the matching values."""
    rng = np.random.default_rng(seed)
    m = int(round(fraction * x.size))
    K = np.sort(rng.choice(x.size, size=m, replace=False))
    return x.ravel()[K], K


class TestFIHTConfig:
    """Configuration defaults and validation."""

    def test_defaults(self):
        config = FIHTConfig()
        assert config.max_iter == 500
        assert config.tol == 1e-5
        assert not config.verbose
        assert config.svd_tol == 0.0

    @pytest.mark.parametrize("max_iter", [0, -3, 2.5])
    def test_invalid_max_iter(self, max_iter):
        with pytest.raises(ValueError, match="max_iter"):
            FIHTConfig(max_iter=max_iter)

    @pytest.mark.parametrize("tol", [0.0, -1e-5, np.nan])
    def test_invalid_tol(self, tol):
        with pytest.raises(ValueError, match="tol"):
            FIHTConfig(tol=tol)

    def test_invalid_svd_tol(self):
        with pytest.raises(ValueError, match="svd_tol"):
            FIHTConfig(svd_tol=-1.0)


class TestRelativeChange:
    """Frobenius relative change between iterates."""

    def test_value(self):
        x_old = np.ones((2, 2, 2))
        x_new = x_old + 0.5
        assert_allclose(relative_change(x_new, x_old), 0.5)

    def test_both_zero(self):
        assert relative_change(np.zeros(4), np.zeros(4)) == 0.0

    def test_zero_reference(self):
        assert relative_change(np.ones(4), np.zeros(4)) == np.inf


class TestConvergenceMonitor:
    """Stop decisions and history."""

    def test_converged(self):
        monitor = ConvergenceMonitor(max_iter=10, tol=1e-3)
        x = np.ones(5)

        monitor.record(x + 0.1, x)
        assert not monitor.done
        monitor.record(x + 1e-6, x)

        assert monitor.converged
        assert monitor.status == 'converged'
        assert monitor.iterations == 2
        assert_allclose(monitor.history, [0.1, 1e-6])

    def test_diverged(self):
        monitor = ConvergenceMonitor(max_iter=10, tol=1e-3)
        x = np.ones(5)

        monitor.record(x * 3.5, x)

        assert monitor.status == 'diverged'
        assert not monitor.converged
        assert monitor.history[-1] > 1

    def test_nan_is_divergence(self):
        monitor = ConvergenceMonitor(max_iter=10, tol=1e-3)
        x = np.ones(5)

        monitor.record(x * np.nan, x)

        assert monitor.status == 'diverged'

    def test_budget_exhausted(self):
        monitor = ConvergenceMonitor(max_iter=3, tol=1e-3)
        x = np.ones(5)

        for _ in range(3):
            monitor.record(x * 1.5, x)

        assert monitor.status == 'max_iter'
        assert monitor.history.shape == (3,)

    def test_record_after_stop(self):
        monitor = ConvergenceMonitor(max_iter=1, tol=1e-3)
        x = np.ones(5)
        monitor.record(x, x)

        with pytest.raises(RuntimeError, match="already stopped"):
            monitor.record(x, x)

    def test_history_is_copy(self):
        monitor = ConvergenceMonitor(max_iter=5, tol=1e-3)
        x = np.ones(5)
        monitor.record(x * 1.2, x)

        history = monitor.history
        history[0] = -1.0

        assert monitor.history[0] == pytest.approx(0.2)


class TestDataConsistencyStep:
    """Gradient step on the sampled entries."""

    def test_updates_only_sampled_entries(self):
        x = np.arange(8, dtype=np.complex128).reshape(2, 2, 2)
        K = np.array([1, 6])
        b = np.array([10.0, 20.0])

        x_new = data_consistency_step(x, K, b, alpha=2.0)

        expected = x.copy().ravel()
        expected[K] = b - expected[K]
        assert_allclose(x_new.ravel(), expected)

    def test_does_not_mutate_input(self):
        x = np.ones((2, 2, 2), dtype=np.complex128)
        data_consistency_step(x, np.array([0]), np.array([5.0]), alpha=1.0)
        assert_allclose(x, 1.0)


class TestExactRecovery:
    """Fully sampled exact low-rank signals are recovered to machine precision."""

    def test_single_mode_even_cube(self, spectral_signal):
        shape = (4, 4, 4)
        x_true = spectral_signal(shape, [(0.12, 0.31, 0.77)], [1.3 - 0.4j])
        K = np.arange(x_true.size)

        success, iterations, ratio, x = fiht_3d(x_true.ravel(), *shape, 1, K, 50, 1e-8)

        assert success
        assert iterations <= 5
        assert ratio.shape == (iterations,)
        assert x.shape == shape
        assert relative_error(x, x_true) < 1e-8

    @pytest.mark.parametrize("shape", [(5, 5, 5), (3, 5, 7), (4, 5, 6), (6, 6, 5)])
    def test_two_modes(self, shape, spectral_signal):
        x_true = spectral_signal(
            shape,
            frequencies=[(0.1, 0.25, 0.4), (0.6, 0.8, 0.15)],
            amplitudes=[1.0, 0.5j],
            damping=[(0.05, 0.0, 0.02), (0.0, 0.04, 0.0)],
        )
        K = np.arange(x_true.size)

        x, info = reconstruct(x_true.ravel(), shape, 2, K, FIHTConfig(max_iter=50, tol=1e-8))

        assert info['converged']
        assert info['status'] == 'converged'
        assert info['symmetric'] == all(n % 2 for n in shape)
        assert relative_error(x, x_true) < 1e-8

    def test_real_observations(self, spectral_signal):
        """Real-valued inputs are accepted and give a complex estimate."""
        shape = (5, 5, 5)
        x_true = spectral_signal(shape, [(0.0, 0.0, 0.0)], [2.0], [(0.1, 0.2, 0.3)]).real
        K = np.arange(x_true.size)

        success, _, _, x = fiht_3d(x_true.ravel(), *shape, 1, K, 20, 1e-8)

        assert success
        assert np.iscomplexobj(x)
        assert_allclose(x.real, x_true, rtol=1e-8, atol=1e-10)

    def test_single_row_lifting(self):
        """A 2x2x2 tensor lifts to a 1 x 8 Hankel matrix."""
        success, _, _, x = fiht_3d(np.ones(8), 2, 2, 2, 1, np.arange(8), 20, 1e-8)

        assert success
        assert_allclose(x, np.ones((2, 2, 2)), atol=1e-12)

    def test_rank_equal_to_smaller_block(self):
        """r = min(l1, l2) lifts any tensor exactly."""
        rng = np.random.default_rng(4)
        shape = (4, 4, 4)  # 8 x 27 lifting
        x_true = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
        K = np.arange(x_true.size)

        success, _, _, x = fiht_3d(x_true.ravel(), *shape, 8, K, 5, 1e-8)

        assert success
        assert relative_error(x, x_true) < 1e-8


class TestRankAdaptation:
    """Overestimated model order is reduced."""

    @pytest.mark.parametrize("shape", [(5, 5, 5), (4, 4, 4)])
    def test_overestimate_reduces_rank(self, shape, spectral_signal):
        x_true = spectral_signal(shape, [(0.2, 0.45, 0.7)], [1.0])
        K = np.arange(x_true.size)

        x, info = reconstruct(x_true.ravel(), shape, 3, K, FIHTConfig(max_iter=50, tol=1e-8))

        assert info['rank_history'][0] == 3
        assert info['final_rank'] == 1
        assert info['singular_values'].shape == (1,)
        assert relative_error(x, x_true) < 1e-8

    def test_rank_history_non_increasing(self, spectral_signal):
        shape = (7, 7, 7)
        x_true = spectral_signal(shape, [(0.1, 0.3, 0.5), (0.7, 0.2, 0.9)], [1.0, 0.7])
        obs, K = sample(x_true, 0.5)

        _, info = reconstruct(obs, shape, 4, K, FIHTConfig(max_iter=30, warn_on_failure=False))

        ranks = np.array(info['rank_history'])
        assert len(ranks) == info['iterations']
        assert np.all(np.diff(ranks) <= 0)
        assert info['final_rank'] <= ranks[-1]


class TestPartialSampling:
    """Recovery from a subset of entries."""

    @pytest.mark.parametrize("shape", [(7, 7, 7), (6, 6, 6)])
    def test_single_mode(self, shape, spectral_signal):
        x_true = spectral_signal(shape, [(0.15, 0.4, 0.65)], [1.0])
        obs, K = sample(x_true, 0.6, seed=1)

        x, info = reconstruct(obs, shape, 1, K, FIHTConfig(max_iter=500, tol=1e-10))

        assert info['converged']
        assert relative_error(x, x_true) < 1e-6
        assert_allclose(x.ravel()[K], obs, rtol=1e-5, atol=1e-5)


class TestFailureModes:
    """Failures are reported, never as NaN."""

    def test_insufficient_samples(self, spectral_signal):
        shape = (4, 4, 4)
        x_true = spectral_signal(shape, [(0.12, 0.31, 0.77)], [1.0])
        K = np.array([5, 42])

        success, iterations, ratio, x = fiht_3d(x_true.ravel()[K], *shape, 1, K, 100, 1e-8)

        assert np.all(np.isfinite(x))
        assert ratio.shape == (iterations,)
        assert 1 <= iterations <= 100
        if not success:
            diverged = (not np.isfinite(ratio[-1])) or ratio[-1] > 1
            assert diverged or iterations == 100

    def test_budget_exhausted_warns(self, spectral_signal):
        shape = (7, 7, 7)
        x_true = spectral_signal(shape, [(0.15, 0.4, 0.65)], [1.0])
        obs, K = sample(x_true, 0.6, seed=1)

        with pytest.warns(UserWarning, match="FIHT"):
            x, info = reconstruct(obs, shape, 1, K, FIHTConfig(max_iter=2, tol=1e-300))

        assert not info['converged']
        assert info['status'] in ('max_iter', 'diverged')
        assert info['ratio_history'].shape == (info['iterations'],)
        assert np.all(np.isfinite(x))

    def test_zero_observations_are_degenerate(self):
        K = np.arange(0, 125, 3)

        with pytest.raises(DegenerateRankError, match="zero") as excinfo:
            reconstruct(np.zeros(K.shape[0]), (5, 5, 5), 1, K)

        assert excinfo.value.iterations == 0
        assert excinfo.value.ratio_history.shape == (0,)
        assert_array_equal(excinfo.value.estimate, np.zeros((5, 5, 5)))

    def test_zero_observations_flat_api(self):
        K = np.arange(0, 125, 3)

        success, iterations, ratio, x = fiht_3d(np.zeros(K.shape[0]), 5, 5, 5, 1, K, 10, 1e-8)

        assert not success
        assert iterations == 0
        assert ratio.shape == (0,)
        assert_array_equal(x, np.zeros((5, 5, 5)))

    def test_rank_collapse_keeps_run_state(self, spectral_signal, monkeypatch):
        shape = (6, 5, 5)
        x_true = spectral_signal(shape, [(0.15, 0.4, 0.65)], [1.0])
        obs, K = sample(x_true, 0.7, seed=2)

        original_update = GeneralStrategy.update
        calls = []

        def collapsing_update(self, x, factors):
            calls.append(1)
            if len(calls) == 3:
                raise DegenerateRankError("Singular spectrum is degenerate (sum=0.0)")
            return original_update(self, x, factors)

        monkeypatch.setattr(GeneralStrategy, "update", collapsing_update)

        config = FIHTConfig(max_iter=10, tol=1e-300, warn_on_failure=False)
        with pytest.raises(DegenerateRankError, match="iteration 3") as excinfo:
            reconstruct(obs, shape, 1, K, config)

        exc = excinfo.value
        assert exc.iterations == 2
        assert exc.ratio_history.shape == (2,)
        assert exc.rank_history == [1, 1, 1]
        assert exc.estimate.shape == shape
        assert np.all(np.isfinite(exc.estimate))

    def test_flat_api_is_silent(self, spectral_signal, recwarn):
        shape = (7, 7, 7)
        x_true = spectral_signal(shape, [(0.15, 0.4, 0.65)], [1.0])
        obs, K = sample(x_true, 0.6, seed=1)

        success, iterations, ratio, _ = fiht_3d(obs, *shape, 1, K, 2, 1e-300)

        assert not success
        assert iterations <= 2
        assert not [w for w in recwarn if issubclass(w.category, UserWarning)]


class TestDeterminism:
    """Identical inputs give identical runs."""

    @pytest.mark.parametrize("shape", [(5, 5, 5), (4, 6, 5)])
    def test_repeatable(self, shape, spectral_signal):
        x_true = spectral_signal(shape, [(0.1, 0.3, 0.5), (0.7, 0.2, 0.9)], [1.0, 0.7])
        obs, K = sample(x_true, 0.7, seed=3)

        config = FIHTConfig(max_iter=15, tol=1e-12, warn_on_failure=False)
        x1, info1 = reconstruct(obs, shape, 2, K, config)
        x2, info2 = reconstruct(obs, shape, 2, K, config)

        assert info1['iterations'] == info2['iterations']
        assert_allclose(info1['ratio_history'], info2['ratio_history'], rtol=1e-12)
        assert_allclose(x1, x2, rtol=1e-12, atol=1e-14)


class TestTrace:
    """Per-iteration progress lines."""

    def test_trace_prints_each_iteration(self, spectral_signal, capsys):
        shape = (7, 7, 7)
        x_true = spectral_signal(shape, [(0.15, 0.4, 0.65)], [1.0])
        obs, K = sample(x_true, 0.6, seed=1)

        _, iterations, _, _ = fiht_3d(obs, *shape, 1, K, 3, 1e-300, trace=True)

        lines = [l for l in capsys.readouterr().out.splitlines() if l.startswith("Iteration")]
        assert len(lines) == iterations
        assert lines[0].startswith("Iteration    1, ratio = ")

    def test_silent_by_default(self, spectral_signal, capsys):
        shape = (5, 5, 5)
        x_true = spectral_signal(shape, [(0.2, 0.1, 0.3)], [1.0])
        K = np.arange(x_true.size)

        fiht_3d(x_true.ravel(), *shape, 1, K, 5, 1e-8)

        assert capsys.readouterr().out == ""


class TestInputValidation:
    """Invalid arguments are rejected before any computation."""

    def setup_method(self):
        self.K = np.array([0, 3, 10])
        self.obs = np.ones(3)

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            fiht_3d(np.ones(2), 3, 3, 3, 1, self.K)

    def test_out_of_range(self):
        with pytest.raises(ValueError, match="must lie in"):
            fiht_3d(self.obs, 3, 3, 3, 1, np.array([0, 3, 27]))

    def test_duplicate_indices(self):
        with pytest.raises(ValueError, match="unique"):
            fiht_3d(self.obs, 3, 3, 3, 1, np.array([0, 3, 3]))

    @pytest.mark.parametrize("r", [0, -1, 9])
    def test_bad_rank(self, r):
        with pytest.raises(ValueError, match="rank"):
            fiht_3d(self.obs, 3, 3, 3, r, self.K)

    def test_bad_maxit(self):
        with pytest.raises(ValueError, match="max_iter"):
            fiht_3d(self.obs, 3, 3, 3, 1, self.K, maxit=0)

    def test_bad_tol(self):
        with pytest.raises(ValueError, match="tol"):
            fiht_3d(self.obs, 3, 3, 3, 1, self.K, tol=0.0)

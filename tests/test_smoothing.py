import logging

import numpy as np
import pytest

from natinterp import LocalSmoothingFilter, Tensors


class TestLocalSmoothingFilter:
    def test_constant_is_unchanged(self):
        shape = (12, 15)
        x = np.full(shape, 3.0, np.float32)
        y = LocalSmoothingFilter().apply(Tensors.identity(shape), 10.0, None, x)
        assert y.dtype == np.float32
        np.testing.assert_allclose(y, 3.0, rtol=1e-6)

    def test_zero_scale_is_identity(self):
        shape = (8, 9)
        x = np.random.RandomState(0).randn(*shape)
        y = LocalSmoothingFilter().apply(Tensors.identity(shape), 0.0, None, x)
        np.testing.assert_allclose(y, x, atol=1e-12)

    def test_anisotropic_smoothing(self):
        """Tensors with d22 = 0 smooth along x1 only."""
        shape = (10, 12)
        tensors = Tensors.from_components(1.0, 0.0, 0.0, shape=shape)
        i2, i1 = np.indices(shape)
        varying_in_x2 = np.sin(i2.astype(float))
        varying_in_x1 = np.sin(i1.astype(float))
        smoother = LocalSmoothingFilter(1e-6)
        np.testing.assert_allclose(
            smoother.apply(tensors, 5.0, None, varying_in_x2), varying_in_x2, atol=1e-10)
        y = smoother.apply(tensors, 5.0, None, varying_in_x1)
        assert np.std(y) < 0.5 * np.std(varying_in_x1)

    def test_reduces_noise_3d(self):
        shape = (6, 7, 8)
        x = np.random.RandomState(1).randn(*shape)
        y = LocalSmoothingFilter().apply(Tensors.identity(shape), 2.0, None, x)
        assert y.shape == shape
        assert np.var(y) < 0.5 * np.var(x)

    def test_preserves_sum(self):
        shape = (16, 16)
        x = np.random.RandomState(2).randn(*shape)
        s = np.random.RandomState(3).rand(*shape)
        y = LocalSmoothingFilter(1e-8).apply(Tensors.identity(shape), 4.0, s, x)
        assert y.sum() == pytest.approx(x.sum(), abs=1e-5)

    def test_scale_factors_localize_smoothing(self):
        shape = (20, 20)
        x = np.random.RandomState(4).randn(*shape)
        s = np.zeros(shape)
        s[:, 10:] = 1.0
        y = LocalSmoothingFilter(1e-6).apply(Tensors.identity(shape), 10.0, s, x)
        assert np.var(y[:, 12:]) < 0.5 * np.var(x[:, 12:])
        np.testing.assert_allclose(y[:, :8], x[:, :8], atol=1e-5)

    def test_non_convergence_is_logged(self, caplog):
        shape = (16, 16)
        x = np.random.RandomState(5).randn(*shape)
        with caplog.at_level(logging.WARNING, logger='natinterp.smoothing'):
            LocalSmoothingFilter(1e-12, 1).apply(Tensors.identity(shape), 100.0, None, x)
        assert 'did not converge' in caplog.text

    def test_invalid_arguments(self):
        shape = (4, 4)
        with pytest.raises(ValueError):
            LocalSmoothingFilter(0.0)
        with pytest.raises(ValueError):
            LocalSmoothingFilter(0.01, 0)
        with pytest.raises(ValueError):
            LocalSmoothingFilter().apply(Tensors.identity((4, 5)), 1.0, None, np.zeros(shape))
        with pytest.raises(ValueError):
            LocalSmoothingFilter().apply(Tensors.identity(shape), -1.0, None, np.zeros(shape))
        with pytest.raises(ValueError):
            LocalSmoothingFilter().apply(Tensors.identity(shape), 1.0, np.ones((3, 3)),
                                         np.zeros(shape))

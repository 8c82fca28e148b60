import numpy as np
import pytest

from natinterp import Tensors, TimeMarker


def single_source(shape, tensors=None):
    times = np.full(shape, np.inf, np.float32)
    marks = np.zeros(shape, np.int64)
    center = tuple(n // 2 for n in shape)
    times[center] = 0.0
    marks[center] = 7
    if tensors is None:
        tensors = Tensors.identity(shape)
    TimeMarker(shape, tensors).apply(times, marks)
    return times, marks, center


# ── Isotropic times ──────────────────────────────────────────────────────────

class TestIsotropic:
    def test_axis_distances_2d(self):
        times, marks, (c2, c1) = single_source((21, 21))
        for k in range(1, 10):
            assert times[c2, c1 + k] == pytest.approx(k, rel=1e-2)
            assert times[c2 - k, c1] == pytest.approx(k, rel=1e-2)
        np.testing.assert_array_equal(marks, 7)

    def test_distances_2d(self):
        shape = (21, 21)
        times, _, center = single_source(shape)
        i2, i1 = np.indices(shape)
        distance = np.hypot(i1 - center[1], i2 - center[0])
        unknown = distance > 0
        ratio = times[unknown] / distance[unknown]
        assert ratio.min() >= 0.99
        assert ratio.max() <= 1.25
        assert times[center] == 0.0

    def test_distances_3d(self):
        shape = (9, 9, 9)
        times, marks, center = single_source(shape)
        i3, i2, i1 = np.indices(shape)
        distance = np.sqrt((i1 - center[2]) ** 2 + (i2 - center[1]) ** 2 + (i3 - center[0]) ** 2)
        unknown = distance > 0
        ratio = times[unknown] / distance[unknown]
        assert ratio.min() >= 0.99
        assert ratio.max() <= 1.4
        assert times[center[0], center[1], center[2] + 3] == pytest.approx(3.0, rel=1e-2)
        np.testing.assert_array_equal(marks, 7)


# ── Anisotropic times ────────────────────────────────────────────────────────

class TestAnisotropic:
    def test_faster_along_x1(self):
        shape = (21, 21)
        tensors = Tensors.from_components(4.0, 0.0, 1.0, shape=shape)
        times, _, (c2, c1) = single_source(shape, tensors)
        for k in range(1, 10):
            assert times[c2, c1 + k] == pytest.approx(k / 2.0, rel=1e-2)
            assert times[c2 + k, c1] == pytest.approx(k, rel=1e-2)

    def test_faster_along_x3(self):
        shape = (9, 9, 9)
        tensors = Tensors.from_components(1.0, 0.0, 0.0, 1.0, 0.0, 4.0, shape=shape)
        times, _, (c3, c2, c1) = single_source(shape, tensors)
        assert times[c3 + 3, c2, c1] == pytest.approx(1.5, rel=1e-2)
        assert times[c3, c2, c1 + 3] == pytest.approx(3.0, rel=1e-2)


# ── Marks ────────────────────────────────────────────────────────────────────

class TestMarks:
    def test_nearest_source(self):
        shape = (11, 21)
        times = np.full(shape, -1.0, np.float32)
        marks = np.zeros(shape, np.int64)
        times[5, 3] = 0.0
        marks[5, 3] = 1
        times[5, 17] = 0.0
        marks[5, 17] = 2
        TimeMarker(shape, Tensors.identity(shape)).apply(times, marks)
        assert np.all(marks[:, :9] == 1)
        assert np.all(marks[:, 12:] == 2)
        assert times[5, 10] == pytest.approx(7.0, rel=1e-2)

    def test_known_samples_unchanged(self):
        rng = np.random.RandomState(3)
        shape = (15, 12)
        times = np.full(shape, np.inf)
        marks = np.full(shape, -1, np.int64)
        known = rng.rand(*shape) < 0.1
        times[known] = 0.0
        marks[known] = np.arange(known.sum())
        TimeMarker(shape, Tensors.identity(shape)).apply(times, marks)
        np.testing.assert_array_equal(times[known], 0.0)
        np.testing.assert_array_equal(marks[known], np.arange(known.sum()))
        assert np.all(marks >= 0)
        assert np.all(np.isfinite(times))

    def test_shape_mismatch(self):
        marker = TimeMarker((4, 5), Tensors.identity((4, 5)))
        with pytest.raises(ValueError):
            marker.apply(np.zeros((5, 4)), np.zeros((5, 4), np.int64))
        with pytest.raises(ValueError):
            TimeMarker((4, 5), Tensors.identity((5, 4)))

import numpy as np
import pytest

from natinterp import Tensors


class TestTensors:
    def test_identity(self):
        t = Tensors.identity((3, 4))
        assert t.shape == (3, 4)
        assert t.ndim == 2
        assert t.array.shape == (3, 4, 2, 2)
        np.testing.assert_array_equal(t.get_tensor((2, 3)), np.eye(2))

    def test_components_2d(self):
        t = Tensors.from_components(1.0, 0.5, 2.0, shape=(2, 3))
        np.testing.assert_array_equal(t.get_tensor((1, 2)), [[1.0, 0.5], [0.5, 2.0]])

    def test_components_3d(self):
        t = Tensors.from_components(1.0, 2.0, 3.0, 4.0, 5.0, 6.0, shape=(2, 2, 2))
        assert t.ndim == 3
        np.testing.assert_array_equal(
            t.get_tensor((1, 0, 1)), [[1.0, 2.0, 3.0], [2.0, 4.0, 5.0], [3.0, 5.0, 6.0]])

    def test_components_inferred_shape(self):
        d11 = np.arange(6.0).reshape(2, 3) + 1.0
        t = Tensors.from_components(d11, 0.0, 1.0)
        assert t.shape == (2, 3)
        assert t.get_tensor((1, 2))[0, 0] == 6.0

    def test_eigen2(self):
        t = Tensors.from_eigen2(np.ones((2, 2)), np.zeros((2, 2)), 4.0, 1.0)
        np.testing.assert_allclose(t.get_tensor((0, 0)), [[4.0, 0.0], [0.0, 1.0]])

    def test_eigen2_normalizes(self):
        t = Tensors.from_eigen2(np.ones((2, 2)), np.ones((2, 2)), 3.0, 1.0)
        np.testing.assert_allclose(t.get_tensor((1, 1)), [[2.0, 1.0], [1.0, 2.0]])

    def test_coordinate_order(self):
        d11 = np.arange(12.0).reshape(3, 4)
        t = Tensors.from_components(d11, 0.0, 1.0)
        c = t.in_coordinate_order()
        assert c.shape == (4, 3, 2, 2)
        np.testing.assert_array_equal(c[3, 1], t.array[1, 3])

    def test_get_tensor_is_copy(self):
        t = Tensors.identity((2, 2))
        t.get_tensor((0, 0))[0, 0] = 5.0
        assert t.array[0, 0, 0, 0] == 1.0

    def test_invalid(self):
        with pytest.raises(ValueError):
            Tensors(np.zeros((3, 3, 3, 3)))
        with pytest.raises(ValueError):
            Tensors(np.broadcast_to([[1.0, 2.0], [0.0, 1.0]], (2, 2, 2, 2)))
        with pytest.raises(ValueError):
            Tensors.from_components(1.0, 0.0, 1.0, 1.0)
        with pytest.raises(ValueError):
            Tensors.from_components(1.0, 0.0, 1.0, shape=(2, 2, 2))

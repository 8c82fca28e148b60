import numpy as np
import pytest

from natinterp import Sampling


class TestSampling:
    def test_uniform(self):
        s = Sampling(5, 0.5, 1.0)
        assert len(s) == 5
        assert s.is_uniform()
        assert s.last == pytest.approx(3.0)
        np.testing.assert_allclose(s.values, [1.0, 1.5, 2.0, 2.5, 3.0])
        assert s.value(2) == pytest.approx(2.0)

    def test_from_uniform_values(self):
        s = Sampling.from_values([0.0, 0.25, 0.5, 0.75])
        assert s.is_uniform()
        assert s.delta == pytest.approx(0.25)

    def test_from_non_uniform_values(self):
        s = Sampling.from_values([0.0, 1.0, 3.0])
        assert not s.is_uniform()
        assert s.last == 3.0
        assert s.value(1) == 1.0
        np.testing.assert_array_equal(s.values, [0.0, 1.0, 3.0])

    def test_index_of_nearest(self):
        s = Sampling(5, 1.0, 0.0)
        assert s.index_of_nearest(1.4) == 1
        assert s.index_of_nearest(-3.0) == 0
        assert s.index_of_nearest(10.0) == 4
        np.testing.assert_array_equal(s.index_of_nearest([0.6, 2.2, 3.9]), [1, 2, 4])

    def test_index_of_nearest_non_uniform(self):
        s = Sampling.from_values([0.0, 1.0, 3.0])
        np.testing.assert_array_equal(s.index_of_nearest([-1.0, 0.4, 1.9, 2.1, 5.0]),
                                      [0, 0, 1, 2, 2])

    def test_invalid(self):
        with pytest.raises(ValueError):
            Sampling(0)
        with pytest.raises(ValueError):
            Sampling(3, 0.0)
        with pytest.raises(ValueError):
            Sampling.from_values([0.0, 2.0, 1.0])
        with pytest.raises(ValueError):
            Sampling.from_values([])

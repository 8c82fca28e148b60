import numpy as np
import pytest

from natinterp.lasserre import polytope_volume


def box(lower, upper):
    """Half-spaces of an axis-aligned box."""
    ndim = len(lower)
    a = np.concatenate([np.eye(ndim), -np.eye(ndim)])
    b = np.concatenate([upper, -np.asarray(lower, float)])
    return a, b


class TestPolytopeVolume:
    def test_unit_square_at_origin(self):
        assert polytope_volume(*box([0.0, 0.0], [1.0, 1.0])) == pytest.approx(1.0)

    def test_unit_square_centered(self):
        assert polytope_volume(*box([-0.5, -0.5], [0.5, 0.5])) == pytest.approx(1.0)

    def test_box(self):
        assert polytope_volume(*box([0.0, 0.0, 0.0], [2.0, 3.0, 4.0])) == pytest.approx(24.0)

    def test_offset_box(self):
        volume = polytope_volume(*box([1.0, -2.0, 0.5], [3.0, 1.0, 4.5]))
        assert volume == pytest.approx(24.0)

    def test_simplex(self):
        a = np.array([[-1.0, 0.0, 0.0], [0.0, -1.0, 0.0], [0.0, 0.0, -1.0], [1.0, 1.0, 1.0]])
        b = np.array([0.0, 0.0, 0.0, 1.0])
        assert polytope_volume(a, b) == pytest.approx(1.0 / 6.0)

    def test_redundant_constraint(self):
        a, b = box([0.0, 0.0], [1.0, 1.0])
        a = np.concatenate([a, [[1.0, 1.0]]])
        b = np.concatenate([b, [5.0]])
        assert polytope_volume(a, b) == pytest.approx(1.0)

    def test_rotated_square(self):
        """A diamond |x| + |y| <= 1 has area 2."""
        a = np.array([[1.0, 1.0], [1.0, -1.0], [-1.0, 1.0], [-1.0, -1.0]])
        b = np.ones(4)
        assert polytope_volume(a, b) == pytest.approx(2.0)

    def test_unbounded(self):
        a = np.array([[1.0, 0.0, 0.0], [-1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, -1.0, 0.0]])
        b = np.array([1.0, 0.0, 1.0, 0.0])
        assert polytope_volume(a, b) == np.inf

    def test_too_few_half_spaces(self):
        assert polytope_volume(np.eye(2), np.ones(2)) == np.inf

    def test_empty_interval(self):
        assert polytope_volume(np.array([[1.0], [-1.0]]), np.array([0.0, -1.0])) == 0.0

    def test_empty_square(self):
        a, b = box([0.0, 0.0], [1.0, 1.0])
        b[0] = -1.0
        assert polytope_volume(a, b) == pytest.approx(0.0)

    def test_inconsistent_shapes(self):
        with pytest.raises(ValueError):
            polytope_volume(np.eye(2), np.ones(3))

    def test_duplicate_facet(self):
        a, b = box([-0.5, -0.5, -0.5], [0.5, 0.5, 0.5])
        a = np.concatenate([a, [[1.0, 0.0, 0.0]]])
        b = np.concatenate([b, [0.5]])
        assert polytope_volume(a, b) == pytest.approx(1.0)

    def test_scaled_duplicate_facet(self):
        a, b = box([-0.5, -0.5], [0.5, 0.5])
        a = np.concatenate([a, [[0.0, 3.0]]])
        b = np.concatenate([b, [1.5]])
        assert polytope_volume(a, b) == pytest.approx(1.0)

    def test_plane_touching_an_edge(self):
        a, b = box([-0.5, -0.5, -0.5], [0.5, 0.5, 0.5])
        a = np.concatenate([a, [[1.0, 1.0, 0.0]]])
        b = np.concatenate([b, [1.0]])
        assert polytope_volume(a, b) == pytest.approx(1.0)

    def test_plane_touching_a_corner(self):
        a, b = box([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
        a = np.concatenate([a, [[1.0, 1.0, 1.0]]])
        b = np.concatenate([b, [3.0]])
        assert polytope_volume(a, b) == pytest.approx(1.0)

    def test_cutting_plane(self):
        """The plane x + y <= 0.5 cuts a corner prism of volume 1/8 off the centered cube."""
        a, b = box([-0.5, -0.5, -0.5], [0.5, 0.5, 0.5])
        a = np.concatenate([a, [[1.0, 1.0, 0.0]]])
        b = np.concatenate([b, [0.5]])
        assert polytope_volume(a, b) == pytest.approx(0.875)

    def test_opposite_half_spaces_without_gap(self):
        a, b = box([0.0, 0.0], [1.0, 1.0])
        a = np.concatenate([a, [[0.0, -1.0]]])
        b = np.concatenate([b, [-2.0]])
        assert polytope_volume(a, b) == 0.0

"""Unit tests for the four-vector helpers."""

import numpy as np
import pytest

from partonsim.core import vectors


class TestInvariants:
    """Tests for masses and products."""

    def test_massless(self):
        p = vectors.four_vector(3.0, 4.0, 0.0, 5.0)
        assert vectors.m2(p) == pytest.approx(0.0)
        assert vectors.pt(p) == pytest.approx(5.0)

    def test_massive(self):
        p = vectors.four_vector(0.0, 0.0, 0.0, 91.0)
        assert vectors.mass(p) == pytest.approx(91.0)

    def test_spacelike_mass_is_negative(self):
        p = vectors.four_vector(3.0, 0.0, 0.0, 0.0)
        assert vectors.mass(p) == pytest.approx(-3.0)

    def test_dot_symmetric(self):
        a = vectors.four_vector(1.0, 2.0, 3.0, 10.0)
        b = vectors.four_vector(-2.0, 0.5, 1.0, 7.0)
        assert vectors.dot4(a, b) == pytest.approx(vectors.dot4(b, a))


class TestBoosts:
    """Tests for Lorentz boosts."""

    def test_rest_frame(self):
        frame = vectors.four_vector(10.0, -5.0, 30.0, 50.0)
        rest = vectors.boost_to_rest(frame, frame)
        np.testing.assert_allclose(rest[:3], 0.0, atol=1e-9)
        assert rest[3] == pytest.approx(vectors.mass(frame))

    def test_round_trip(self):
        frame = vectors.four_vector(10.0, -5.0, 30.0, 50.0)
        p = vectors.four_vector(1.0, 2.0, 3.0, 4.0)
        back = vectors.boost_from_rest(vectors.boost_to_rest(p, frame), frame)
        np.testing.assert_allclose(back, p, atol=1e-9)

    def test_boost_preserves_mass(self):
        p = vectors.four_vector(1.0, 2.0, 3.0, 10.0)
        boosted = vectors.boost(p, np.array([0.1, -0.3, 0.5]))
        assert vectors.m2(boosted) == pytest.approx(vectors.m2(p))

    def test_superluminal_rejected(self):
        with pytest.raises(ValueError):
            vectors.boost(vectors.four_vector(e=1.0), np.array([0.0, 0.0, 1.0]))


class TestTransverse:
    """Tests for transverse basis and kicks."""

    def test_perpendicular_basis(self):
        e1, e2 = vectors.perpendicular_basis(np.array([0.0, 0.0, 2.0]))
        assert np.dot(e1, e2) == pytest.approx(0.0, abs=1e-12)
        assert np.dot(e1, [0.0, 0.0, 1.0]) == pytest.approx(0.0, abs=1e-12)
        assert np.linalg.norm(e1) == pytest.approx(1.0)

    def test_null_axis_rejected(self):
        with pytest.raises(ValueError):
            vectors.perpendicular_basis(np.zeros(3))

    def test_kick_orthogonal_to_both(self):
        pa = vectors.four_vector(10.0, 0.0, 10.0, np.sqrt(200.0))
        pb = vectors.four_vector(-5.0, 3.0, 0.0, np.sqrt(34.0))
        k = vectors.transverse_kick(pa, pb, 2.0, 0.7)
        assert vectors.dot4(k, pa) == pytest.approx(0.0, abs=1e-9)
        assert vectors.dot4(k, pb) == pytest.approx(0.0, abs=1e-9)
        assert vectors.m2(k) == pytest.approx(-4.0)

    def test_massless_pair(self):
        p1, p2 = vectors.massless_pair(100.0, 30.0, 1.2, rapidity=0.5)
        assert vectors.m2(p1) == pytest.approx(0.0, abs=1e-8)
        assert vectors.m2(p2) == pytest.approx(0.0, abs=1e-8)
        assert vectors.mass(p1 + p2) == pytest.approx(100.0)
        assert vectors.pt(p1) == pytest.approx(30.0)

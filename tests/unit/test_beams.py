"""Unit tests for beams and the toy parton density."""

import numpy as np
import pytest
from scipy import integrate

from partonsim.core import vectors
from partonsim.core.beams import BeamParticle, ToyPDF


class TestToyPDF:
    """Tests for ToyPDF."""

    def test_outside_range_is_zero(self):
        pdf = ToyPDF()
        for x in (0.0, 1.0, 1.5, -0.1):
            assert pdf.xf(21, x, 10.0) == 0.0

    def test_positive_inside(self):
        pdf = ToyPDF()
        for pdg_id in (21, 1, 2, -1, -2, 3):
            assert pdf.xf(pdg_id, 0.1, 10.0) > 0.0

    def test_valence_excess(self):
        pdf = ToyPDF()
        assert pdf.xf(2, 0.3, 10.0) > pdf.xf(-2, 0.3, 10.0)
        assert pdf.xf(1, 0.3, 10.0) > pdf.xf(-1, 0.3, 10.0)

    def test_heavy_flavours_absent(self):
        pdf = ToyPDF(n_sea_flavours=3)
        assert pdf.xf(5, 0.1, 10.0) == 0.0

    def test_momentum_sum_rule(self):
        pdf = ToyPDF()
        ids = [21] + [q for f in (1, 2, 3) for q in (f, -f)]
        total = 0.0
        for pdg_id in ids:
            value, _ = integrate.quad(lambda x: pdf.xf(pdg_id, x, 10.0), 0.0, 1.0, limit=200)
            total += value
        assert total == pytest.approx(1.0, abs=1e-3)

    def test_small_x_rise_grows_with_scale(self):
        pdf = ToyPDF()
        assert pdf.xf(21, 1e-4, 1e4) > pdf.xf(21, 1e-4, 1.0)


class TestBeamParticle:
    """Tests for BeamParticle."""

    def make_beam(self, pdg_id=2212, pz=500.0):
        return BeamParticle(pdg_id, vectors.four_vector(0.0, 0.0, pz, abs(pz)), pdf=ToyPDF())

    def test_resolved_list(self):
        beam = self.make_beam()
        beam.append(3, 21, 0.1)
        beam.append(7, 2, 0.2)
        assert len(beam) == 2
        assert beam.find(7) == 1
        assert beam.find(99) is None
        assert beam.x_max() == pytest.approx(0.7)
        assert beam.x_max(skip=0) == pytest.approx(0.8)

    def test_update(self):
        beam = self.make_beam()
        beam.append(3, 21, 0.1)
        beam.update(0, 9, 1, 0.3)
        assert beam[0].index == 9
        assert beam[0].x == pytest.approx(0.3)

    def test_parton_momentum_direction(self):
        beam = self.make_beam(pz=-500.0)
        p = beam.parton_momentum(0.2)
        np.testing.assert_allclose(p, [0.0, 0.0, -100.0, 100.0])
        assert beam.direction == -1.0

    def test_antiproton_conjugates(self):
        proton = self.make_beam(2212)
        antiproton = self.make_beam(-2212)
        assert antiproton.xf(-2, 0.3, 10.0) == pytest.approx(proton.xf(2, 0.3, 10.0))
        assert antiproton.xf(21, 0.3, 10.0) == pytest.approx(proton.xf(21, 0.3, 10.0))

    def test_lepton_not_resolved(self):
        beam = BeamParticle(11, vectors.four_vector(0.0, 0.0, 100.0, 100.0))
        assert not beam.is_hadron
        assert not beam.is_resolved
        assert beam.xf(21, 0.1, 10.0) == 0.0

    def test_snapshot_restore(self):
        beam = self.make_beam()
        beam.append(3, 21, 0.1)
        saved = beam.snapshot()
        beam.update(0, 5, 21, 0.4)
        beam.append(8, 1, 0.1)
        beam.restore(saved)
        assert len(beam) == 1
        assert beam[0].index == 3

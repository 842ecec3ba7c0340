"""
Tests for staging geometry derivation.

These tests validate:
- Lift and visual total height derivation
- Override handling without clamping
- Admission refusal for shallow containers
"""

import pytest

from vca.core.errors import ValidationRejected
from vca.staging.height_validator import (
    check_admission,
    clamp_lift,
    compute_geometry,
    format_cm,
    max_lift,
)


class TestComputeGeometry:
    """Tests for compute_geometry."""

    def test_reference_pair(self):
        """180cm plant, 15cm pot, 30cm container -> lift 15, total 195."""
        result = compute_geometry(180, 15, 30)

        assert result.lift_height == 15
        assert result.visual_total_height == 195
        assert result.is_valid is True
        assert result.messages == ["Calculated Visual Height: 195cm (Lift: 15cm)"]

    @pytest.mark.parametrize(
        "product,pot,container",
        [(0, 0, 0), (100, 20, 10), (50, 0, 40), (120.5, 12.5, 30)],
    )
    def test_total_is_product_plus_lift(self, product, pot, container):
        result = compute_geometry(product, pot, container)

        assert result.lift_height == max(0, container - pot)
        assert result.visual_total_height == product + result.lift_height

    def test_override_is_used_verbatim(self):
        """Overrides are stored raw, even outside [0, max_lift]."""
        result = compute_geometry(180, 15, 30, custom_lift=40)

        assert result.lift_height == 40
        assert result.visual_total_height == 220

    def test_zero_override_is_not_treated_as_missing(self):
        result = compute_geometry(180, 15, 30, custom_lift=0)

        assert result.lift_height == 0
        assert result.visual_total_height == 180

    def test_zero_height_is_invalid(self):
        assert compute_geometry(0, 10, 5).is_valid is False


class TestClampLift:
    def test_clamps_into_range(self):
        assert max_lift(15, 30) == 15
        assert clamp_lift(-3, 15, 30) == 0
        assert clamp_lift(8, 15, 30) == 8
        assert clamp_lift(99, 15, 30) == 15

    def test_pot_taller_than_container(self):
        assert clamp_lift(5, 40, 30) == 0


class TestAdmission:
    """Tests for check_admission."""

    def test_rejects_insufficient_clearance(self):
        with pytest.raises(ValidationRejected, match="taller than the original pot"):
            check_admission(15, 16)

    def test_accepts_exactly_two_centimetres(self):
        check_admission(15, 17)


def test_format_cm():
    assert format_cm(180) == "180"
    assert format_cm(180.0) == "180"
    assert format_cm(12.5) == "12.5"

"""Staging geometry derivation and generation admission.

Processing flow:
    1. `max_lift = max(0, container_height - pot_height)`.
    2. Lift is the caller override when given, else `max_lift`.
    3. `visual_total_height = product_height + lift`.
    4. Valid when the total is positive.

Admission:
    Generation needs at least `MIN_TOPPING_CLEARANCE_CM` between the nominal pot
    height and the container rim for the topping layer. The check deliberately
    ignores any lift override.

Determinism:
    Pure functions; no I/O and no shared state.
"""

from __future__ import annotations

from vca.core.errors import ValidationRejected
from vca.core.types import GeometryResult


MIN_TOPPING_CLEARANCE_CM = 2


def format_cm(value: float) -> str:
    """Render a centimetre value without a trailing `.0` for whole numbers."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:g}"


def max_lift(pot_height: float, container_height: float) -> float:
    """Largest lift that keeps the original pot inside the container."""
    return max(0, container_height - pot_height)


def clamp_lift(value: float, pot_height: float, container_height: float) -> float:
    """Clamp a requested lift into `[0, max_lift]`.

    The workflow stores raw overrides; adapters call this before forwarding
    operator input.
    """
    return min(max(0, value), max_lift(pot_height, container_height))


def compute_geometry(
    product_height: float,
    pot_height: float,
    container_height: float,
    custom_lift: float | None = None,
) -> GeometryResult:
    """Derive lift and visual total height for a product/container pair.

    Args:
        product_height: Product height including its original pot.
        pot_height: Original pot height (0 when unknown).
        container_height: Decorative container height.
        custom_lift: Operator override; stored unclamped.

    Returns:
        `GeometryResult` with a single summary message.
    """
    lift = custom_lift if custom_lift is not None else max_lift(pot_height, container_height)
    total = product_height + lift
    return GeometryResult(
        lift_height=lift,
        visual_total_height=total,
        is_valid=total > 0,
        messages=[
            f"Calculated Visual Height: {format_cm(total)}cm (Lift: {format_cm(lift)}cm)"
        ],
    )


def clearance(pot_height: float, container_height: float) -> float:
    return container_height - pot_height


def check_admission(pot_height: float, container_height: float) -> None:
    """Refuse generation when the container is too shallow for the topping.

    Raises:
        ValidationRejected: If the container is less than 2 cm taller than the
            nominal pot.
    """
    gap = clearance(pot_height, container_height)
    if gap < MIN_TOPPING_CLEARANCE_CM:
        raise ValidationRejected(
            "Container too shallow for this plant: it must be at least "
            f"{MIN_TOPPING_CLEARANCE_CM}cm taller than the original pot to leave room "
            f"for the topping layer (container {format_cm(container_height)}cm, "
            f"pot {format_cm(pot_height)}cm)."
        )

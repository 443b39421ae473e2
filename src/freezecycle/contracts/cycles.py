"""Segmentation stage contract.

Enforces the guarantee that cycle drafts are internally consistent before
they are reconciled against the store.
"""

from freezecycle.contracts.base import require

# Float slack for comparing a stored total against a running sum
_ENERGY_TOLERANCE = 1e-6


def assert_cycle_drafts(drafts) -> None:
    """Enforce segmentation stage contract.

    Verifies that:
    - every draft has at least one point, in chronological order
    - accumulated energy is a non-decreasing running sum ending at the total
    - at most one draft is flagged as the current cycle

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    current = [d for d in drafts if d.is_current]
    require(
        len(current) <= 1,
        f"Segmentation contract violated: {len(current)} drafts flagged current"
    )

    for draft in drafts:
        label = draft.start_real.isoformat()
        require(len(draft.points) > 0, f"Segmentation contract violated: cycle {label} has no points")

        running = 0.0
        previous = None
        for point in draft.points:
            if previous is not None:
                require(
                    point.timestamp > previous,
                    f"Segmentation contract violated: cycle {label} points out of order"
                )
            previous = point.timestamp
            running += point.energy_instant
            require(
                abs(point.energy_accumulated - running) <= _ENERGY_TOLERANCE * max(1.0, abs(running)),
                f"Segmentation contract violated: cycle {label} accumulated energy "
                f"{point.energy_accumulated} != running sum {running}"
            )

        require(
            abs(draft.energy_accumulated_total - draft.points[-1].energy_accumulated)
            <= _ENERGY_TOLERANCE * max(1.0, abs(running)),
            f"Segmentation contract violated: cycle {label} total does not match last point"
        )

        if draft.end_real is not None and not draft.is_current:
            require(
                draft.end_real > draft.start_real,
                f"Segmentation contract violated: cycle {label} ends before it starts"
            )

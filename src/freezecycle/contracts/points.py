"""Point construction contract.

Enforces that processed points handed to the segmenter are chronological,
unique per timestamp, and carry finite values for every required field.
"""

import math

from freezecycle.contracts.base import require


def assert_processed_points(points) -> None:
    """Enforce the point construction contract.

    Parameters
    ----------
    points : list[ProcessedPoint]
        Output of build_processed_points()

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    previous = None
    for point in points:
        if previous is not None:
            require(
                point.timestamp > previous,
                f"Point contract violated: {point.timestamp.isoformat()} does not follow "
                f"{previous.isoformat()}"
            )
        previous = point.timestamp

        for name in ("serpentine_temp", "door_temp", "operation_state", "energy_instant", "min_real"):
            value = getattr(point, name)
            require(
                value is not None and math.isfinite(value),
                f"Point contract violated: '{name}' is {value!r} at {point.timestamp.isoformat()}"
            )

        require(
            point.min_real >= 0,
            f"Point contract violated: negative min_real at {point.timestamp.isoformat()}"
        )

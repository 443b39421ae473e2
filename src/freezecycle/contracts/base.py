"""require(): the check used by every stage contract."""

from freezecycle.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Raise ContractViolation with ``message`` unless ``condition`` holds.

    Stage checks call this on the output of point construction and
    segmentation before anything reaches the store, so a broken energy
    trace or an unsorted point stream is never persisted.

    Examples
    --------
    >>> require(cycle.points, "Cycle draft has no points")
    """
    if not condition:
        raise ContractViolation(message)

"""Engine contracts: fail-fast enforcement of stage invariants.

Key principle:
- Pydantic validates config correctness
- Contracts validate engine correctness
- Point construction absorbs data-quality problems
"""

from freezecycle.contracts.failure import ContractViolation
from freezecycle.contracts.base import require
from freezecycle.contracts.points import assert_processed_points
from freezecycle.contracts.cycles import assert_cycle_drafts

__all__ = [
    "ContractViolation",
    "require",
    "assert_processed_points",
    "assert_cycle_drafts",
]

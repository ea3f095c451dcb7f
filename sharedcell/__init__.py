"""
sharedcell: shared, mutable, reference-counted ownership of a value, with
borrow-checked read/write guards and non-owning weak handles.

Single-threaded by design.
"""

import logging

from .cell import (
    AllocationState,
    BorrowConflict,
    CellError,
    DeadReferent,
    HandleReleased,
    ReadGuard,
    SharedCell,
    WeakCell,
    WriteGuard,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "SharedCell",
    "WeakCell",
    "ReadGuard",
    "WriteGuard",
    "AllocationState",
    "CellError",
    "BorrowConflict",
    "DeadReferent",
    "HandleReleased",
]

"""Shared, mutable, reference-counted ownership of a single value.

A SharedCell owns one strong unit of an allocation; a WeakCell observes the
same allocation without keeping the value alive. The value is reached through
read/write guards that are checked when acquired: any number of readers, or
exactly one writer.

Handles and guards are released explicitly with release(), on leaving a
``with`` block, or when the handle object itself is garbage collected.

Limitations: single-threaded only, counters and borrow flag are plain ints.
"""

import logging
from enum import Enum, IntEnum
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_REF = "No ref"


class CellError(Exception):
    """Base class for sharedcell errors"""
    pass


class BorrowConflict(CellError):
    """Guard requested while a conflicting guard is outstanding"""
    pass


class DeadReferent(CellError):
    """Value behind a weak handle is no longer alive"""
    pass


class HandleReleased(CellError):
    """SharedCell used after release()"""
    pass


class BorrowFlag(IntEnum):
    UNUSED = 0
    # readers >= 1
    WRITING = -1


class AllocationState(Enum):
    LIVE = "live"
    DEAD = "dead"
    RECLAIMED = "reclaimed"


_DROPPED = object()


class _Allocation:
    """
    Counter block shared by every handle of one value.
      value:  the contained value, or _DROPPED once it is dead
      flag:   BorrowFlag.UNUSED, the number of readers, or BorrowFlag.WRITING
      strong: number of SharedCell handles
      weak:   number of WeakCell handles
      label:  optional name used in log records and error messages
    """

    __slots__ = ("value", "flag", "strong", "weak", "label")

    def __init__(self, value, label: Optional[str] = None):
        self.value = value
        self.flag = BorrowFlag.UNUSED
        self.strong = 1
        self.weak = 0
        self.label = label

    def describe(self) -> str:
        if self.label is not None:
            return repr(self.label)
        return f"allocation {id(self):#x}"

    @property
    def state(self) -> AllocationState:
        if self.strong > 0:
            return AllocationState.LIVE
        if self.weak > 0:
            return AllocationState.DEAD
        return AllocationState.RECLAIMED

    def borrow(self):
        if self.flag == BorrowFlag.WRITING:
            logger.debug("read borrow refused, %s is being written", self.describe())
            raise BorrowConflict(f"{self.describe()} is already mutably borrowed")
        self.flag += 1

    def unborrow(self):
        self.flag -= 1
        self._drop_if_unused()

    def borrow_mut(self):
        if self.flag != BorrowFlag.UNUSED:
            kind = "mutably borrowed" if self.flag == BorrowFlag.WRITING else "borrowed"
            logger.debug("write borrow refused, %s is %s", self.describe(), kind)
            raise BorrowConflict(f"{self.describe()} is already {kind}")
        self.flag = BorrowFlag.WRITING

    def unborrow_mut(self):
        self.flag = BorrowFlag.UNUSED
        self._drop_if_unused()

    def incref(self):
        self.strong += 1

    def decref(self):
        self.strong -= 1
        if self.strong > 0:
            return
        if self.flag != BorrowFlag.UNUSED:
            logger.debug("%s lost its last owner while borrowed, drop deferred", self.describe())
        self._drop_if_unused()
        if self.weak == 0:
            logger.debug("%s reclaimed", self.describe())

    def incweak(self):
        self.weak += 1

    def decweak(self):
        self.weak -= 1
        if self.weak == 0 and self.strong == 0:
            logger.debug("%s reclaimed", self.describe())

    def _drop_if_unused(self):
        # The value outlives its last owner only while a guard still points at it.
        if self.strong == 0 and self.flag == BorrowFlag.UNUSED and self.value is not _DROPPED:
            self.value = _DROPPED
            logger.debug("%s dropped", self.describe())


class _Guard(Generic[T]):
    """Scoped borrow of an allocation's value; returns the borrow on release."""

    def __init__(self, allocation: _Allocation, unborrow: Callable[[], None]):
        self._allocation = allocation
        self._unborrow = unborrow
        self._active = True

    @property
    def value(self) -> T:
        self._check()
        return self._allocation.value

    def _check(self):
        if not self._active:
            raise BorrowConflict(f"guard over {self._allocation.describe()} already released")

    def release(self) -> None:
        if self._active:
            self._active = False
            self._unborrow()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def __del__(self):
        if getattr(self, "_active", False):
            self.release()

    def __repr__(self):
        state = repr(self._allocation.value) if self._active else "released"
        return f"{type(self).__name__}({state})"


class ReadGuard(_Guard[T]):
    """Shared view of the value. Any number may be outstanding at once."""

    def __init__(self, allocation: _Allocation):
        super().__init__(allocation, allocation.unborrow)


class WriteGuard(_Guard[T]):
    """Exclusive, mutable view of the value."""

    def __init__(self, allocation: _Allocation):
        super().__init__(allocation, allocation.unborrow_mut)

    @_Guard.value.setter
    def value(self, new_value: T) -> None:
        self._check()
        self._allocation.value = new_value


class SharedCell(Generic[T]):
    """
    Owning handle. Every clone holds one strong unit of the same allocation;
    the value is dropped when the last one is released.

        cell = SharedCell("Hello")
        with cell.write() as guard:
            guard.value += ", world!"
    """

    def __init__(self, value: T, label: Optional[str] = None):
        self._allocation: Optional[_Allocation] = _Allocation(value, label)

    @classmethod
    def from_allocation(cls, allocation: _Allocation) -> "SharedCell[T]":
        """Wrap an allocation whose strong count the caller already bumped."""
        cell = cls.__new__(cls)
        cell._allocation = allocation
        return cell

    def _live(self) -> _Allocation:
        allocation = self._allocation
        if allocation is None:
            raise HandleReleased("SharedCell used after release()")
        return allocation

    def read(self) -> ReadGuard[T]:
        allocation = self._live()
        allocation.borrow()
        return ReadGuard(allocation)

    def write(self) -> WriteGuard[T]:
        allocation = self._live()
        allocation.borrow_mut()
        return WriteGuard(allocation)

    def replace(self, value: T) -> T:
        """Swap in a new value under an exclusive borrow and return the old one."""
        with self.write() as guard:
            old = guard.value
            guard.value = value
        return old

    def raw_pointer(self) -> int:
        """Identity of the value's slot, stable across writes for the allocation's life."""
        return id(self._live())

    def ptr_eq(self, other: "SharedCell[T]") -> bool:
        return self._live() is other._live()

    def clone(self) -> "SharedCell[T]":
        allocation = self._live()
        allocation.incref()
        return SharedCell.from_allocation(allocation)

    def downgrade(self) -> "WeakCell[T]":
        allocation = self._live()
        allocation.incweak()
        return WeakCell.from_allocation(allocation)

    def strong_count(self) -> int:
        return self._live().strong

    def weak_count(self) -> int:
        return self._live().weak

    def release(self) -> None:
        """Give up this handle's strong unit. Safe to call more than once."""
        allocation, self._allocation = self._allocation, None
        if allocation is not None:
            allocation.decref()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def __del__(self):
        if getattr(self, "_allocation", None) is not None:
            self.release()

    def __str__(self):
        with self.read() as guard:
            return str(guard.value)

    def __repr__(self):
        if self._allocation is None:
            return "SharedCell(<released>)"
        with self.read() as guard:
            return repr(guard.value)


class WeakCell(Generic[T]):
    """
    Non-owning observer of a SharedCell's allocation. It never keeps the
    value alive; upgrade() is the only way back to the value.
    """

    def __init__(self):
        self._allocation: Optional[_Allocation] = None

    @classmethod
    def from_allocation(cls, allocation: _Allocation) -> "WeakCell[T]":
        """Wrap an allocation whose weak count the caller already bumped."""
        weak = cls()
        weak._allocation = allocation
        return weak

    @classmethod
    def from_shared(cls, shared: SharedCell[T]) -> "WeakCell[T]":
        return shared.downgrade()

    def clone(self) -> "WeakCell[T]":
        allocation = self._allocation
        if allocation is None:
            return WeakCell()
        allocation.incweak()
        return WeakCell.from_allocation(allocation)

    def upgrade(self) -> Optional[SharedCell[T]]:
        """Return a new owner if the value is still alive, else None."""
        allocation = self._allocation
        if allocation is None or allocation.strong == 0:
            logger.debug("upgrade failed, no live value behind weak handle")
            return None
        allocation.incref()
        return SharedCell.from_allocation(allocation)

    @property
    def state(self) -> AllocationState:
        if self._allocation is None:
            return AllocationState.RECLAIMED
        return self._allocation.state

    def strong_count(self) -> int:
        if self._allocation is None:
            return 0
        return self._allocation.strong

    def weak_count(self) -> int:
        if self._allocation is None:
            return 0
        return self._allocation.weak

    def raw_pointer(self) -> int:
        shared = self.upgrade()
        if shared is None:
            raise DeadReferent("weak handle has no live value")
        with shared:
            return shared.raw_pointer()

    def release(self) -> None:
        allocation, self._allocation = self._allocation, None
        if allocation is not None:
            allocation.decweak()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def __del__(self):
        if getattr(self, "_allocation", None) is not None:
            self.release()

    def _render(self, render: Callable[[T], str]) -> str:
        if self.weak_count() == 0:
            return NO_REF
        shared = self.upgrade()
        if shared is None:
            raise DeadReferent(f"{self._allocation.describe()} was dropped")
        with shared, shared.read() as guard:
            return render(guard.value)

    def __str__(self):
        return self._render(str)

    def __repr__(self):
        return self._render(repr)

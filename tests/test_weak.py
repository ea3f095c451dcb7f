import pytest
from sharedcell import SharedCell, WeakCell, AllocationState, DeadReferent


def test_clone_weak():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    weak2 = weak.clone()

    assert weak.weak_count() == 2
    assert weak.strong_count() == 1

    shared2 = weak2.upgrade()
    assert shared2 is not None
    with shared2.read() as guard:
        assert guard.value == "Hello"
    assert weak.strong_count() == 2


def test_downgrade_and_upgrade():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    shared2 = weak.upgrade()
    assert shared2 is not None
    with shared2.read() as guard:
        assert guard.value == "Hello"
    assert weak.strong_count() == 2
    assert shared.ptr_eq(shared2)


def test_from_shared():
    shared = SharedCell(1)
    weak = WeakCell.from_shared(shared)
    assert shared.weak_count() == 1
    assert weak.state is AllocationState.LIVE


def test_empty():
    weak = WeakCell()
    assert weak.upgrade() is None
    assert weak.weak_count() == 0
    assert weak.strong_count() == 0
    assert weak.state is AllocationState.RECLAIMED
    assert weak.clone().weak_count() == 0


def test_upgrade_after_last_owner_released():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    assert weak.upgrade() is not None
    shared.release()
    assert weak.upgrade() is None
    assert weak.strong_count() == 0
    assert weak.weak_count() == 1
    assert weak.state is AllocationState.DEAD


def test_upgraded_owner_keeps_value_alive():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    survivor = weak.upgrade()
    shared.release()
    assert weak.state is AllocationState.LIVE
    assert str(weak) == "Hello"
    survivor.release()
    assert weak.upgrade() is None


def test_reclaimed_after_last_weak_released():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    other = weak.clone()
    shared.release()
    weak.release()
    assert other.state is AllocationState.DEAD
    allocation = other._allocation
    other.release()
    assert allocation.state is AllocationState.RECLAIMED


def test_released_weak_acts_empty():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    weak.release()
    assert shared.weak_count() == 0
    assert weak.upgrade() is None
    assert str(weak) == "No ref"


def test_weak_does_not_keep_value():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    allocation = shared._allocation
    shared.release()
    assert allocation.value != "Hello"
    assert weak.weak_count() == 1


def test_drop_deferred_while_borrowed():
    shared = SharedCell([1])
    weak = shared.downgrade()
    guard = shared.read()
    shared.release()
    assert weak.state is AllocationState.DEAD
    assert weak.upgrade() is None
    assert guard.value == [1]
    guard.release()
    assert weak._allocation.value != [1]


def test_raw_pointer():
    shared = SharedCell(1)
    weak = shared.downgrade()
    pointer = weak.raw_pointer()
    assert pointer == shared.raw_pointer()
    shared.replace(2)
    assert weak.raw_pointer() == pointer
    assert shared.strong_count() == 1


def test_raw_pointer_dead():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    shared.release()
    with pytest.raises(DeadReferent):
        weak.raw_pointer()
    with pytest.raises(DeadReferent):
        WeakCell().raw_pointer()


def test_display():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    assert str(weak) == "Hello"
    assert repr(weak) == "'Hello'"
    assert shared.strong_count() == 1
    assert str(WeakCell()) == "No ref"
    assert repr(WeakCell()) == "No ref"


def test_display_dead():
    shared = SharedCell("Hello")
    weak = shared.downgrade()
    shared.release()
    with pytest.raises(DeadReferent):
        str(weak)


def test_roundtrip():
    shared = SharedCell({"a": 1})
    upgraded = shared.downgrade().upgrade()
    with upgraded.read() as guard:
        assert guard.value == {"a": 1}


def test_context_manager():
    shared = SharedCell("Hello")
    with shared.downgrade() as weak:
        assert shared.weak_count() == 1
        assert weak.upgrade() is not None
    assert shared.weak_count() == 0

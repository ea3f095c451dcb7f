#!/usr/bin/env python3
"""
Demo script for sharedcell showing a tree whose children point back at
their parent through weak handles.
"""

import logging

from sharedcell import SharedCell, WeakCell, BorrowConflict


class Node:
    def __init__(self, name):
        self.name = name
        self.parent = WeakCell()
        self.children = []

    def __repr__(self):
        return f"Node({self.name!r}, children={[str(c) for c in self.children]})"

    def __str__(self):
        return self.name


def add_child(parent, name):
    child = SharedCell(Node(name), label=name)
    with child.write() as guard:
        guard.value.parent = parent.downgrade()
    with parent.write() as guard:
        guard.value.children.append(child)
    return child


def main():
    """Main demo function."""
    logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    root = SharedCell(Node("root"), label="root")
    leaf = add_child(root, "leaf")
    print("[main] tree:", repr(root))
    print("[main] root strong/weak:", root.strong_count(), root.weak_count())

    with leaf.read() as guard:
        print("[main] leaf's parent:", guard.value.parent)

    with root.read():
        try:
            root.write()
        except BorrowConflict as e:
            print("[main] refused:", e)

    # The leaf is also owned by root's children list, so drop that first.
    with root.write() as guard:
        guard.value.children.clear()
    with leaf.read() as guard:
        parent = guard.value.parent.clone()
    root.release()
    print("[main] parent after root released:", parent.upgrade())
    print("[main] parent state:", parent.state.value)
    parent.release()
    leaf.release()


if __name__ == "__main__":
    main()

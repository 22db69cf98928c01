from __future__ import annotations


class TreemarksError(Exception):
    """Base class for errors reported by the engine."""


class StructuralCorruption(TreemarksError, ValueError):
    """A node was seen with inconsistent parent linkage."""


class InvalidMove(TreemarksError, ValueError):
    """A move was rejected before reaching the store."""


class MoveInProgress(TreemarksError, RuntimeError):
    """A second move was requested for a node that is still being moved."""


class StoreError(TreemarksError, RuntimeError):
    pass


class StoreWriteFailure(StoreError):
    """The store refused or failed a write; the snapshot is unchanged."""


class StoreReadFailure(StoreError):
    """The store could not be read; stale data is kept in place."""

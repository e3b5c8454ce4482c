"""Error taxonomy for the ClipTrail history engine.

None of these are allowed to escape a public operation of the history
service; they are raised internally and converted into a logged no-op or
a degraded result at the boundary.
"""

from __future__ import annotations


class ClipTrailError(Exception):
    """Base exception for all ClipTrail errors."""


class TransientIOError(ClipTrailError):
    """Raised when reading, writing or deleting a resource file fails."""


class CorruptPersistedStateError(ClipTrailError):
    """Raised when the persisted history snapshot cannot be decoded."""

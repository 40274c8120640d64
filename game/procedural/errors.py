"""Exception types for the procedural content pipeline.

Out-of-contract call arguments raise plain :class:`ValueError`.  Structural
problems with composite data (tags, recipe parameters, blobs, assembled
buffers) raise :class:`DataFormatError`, a ``ValueError`` subclass so callers
that only care about "bad input" can catch both.
"""


class DataFormatError(ValueError):
    """A value violates its structural invariants or wire format."""


class AssetIntegrityError(DataFormatError):
    """The same asset key was presented with a different seed or recipe."""


__all__ = ["DataFormatError", "AssetIntegrityError"]

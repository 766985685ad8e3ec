"""
Exceptions raised by the recognizer.

All of them derive from RecogError so callers can catch the whole family.
None of them is retried internally.
"""


class RecogError(Exception):
    """Base class for recognizer failures."""


class TrainingClosed(RecogError):
    """Raised when an example is added after training was finalized."""

    def __init__(self, message: str = "Training is finalized; rebuild from the generating set"):
        super().__init__(message)


class EmptyClass(RecogError):
    """
    Raised when finalizing with a declared label that has no examples.

    Attributes:
        label: The label of the empty class
    """

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Class {label!r} has no examples")


class NoTemplates(RecogError):
    """Raised when identifying against a store with zero classes."""


class NotFinalized(RecogError):
    """Raised when identification is attempted before finalize()."""


class InvalidConfiguration(RecogError, ValueError):
    """Raised for inconsistent scaling, threshold or charset settings."""


class MalformedPersistedData(RecogError, ValueError):
    """Raised when a serialized recognizer is inconsistent or truncated."""


class EmptyBitmap(RecogError, ValueError):
    """Raised when a sample has no foreground pixels."""

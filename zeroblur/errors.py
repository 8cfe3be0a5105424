"""Exception types raised by the focus stacking pipeline."""

from __future__ import annotations


class FocusStackError(Exception):
    """Base class for focus stacking errors."""


class DecodeError(FocusStackError):
    """An input could not be decoded into a pixel buffer."""


class AlignmentError(FocusStackError):
    """A frame could not be aligned to the reference."""


class EmptyInputError(FocusStackError):
    """No frames were supplied."""


class NoValidFrameError(FocusStackError):
    """Every input failed to decode."""


class NumericFault(FocusStackError):
    """NaN/Inf values or a singular transform showed up in the image math."""

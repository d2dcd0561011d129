"""Exceptions raised in one layer and handled in another.

Quiet or degenerate audio is not an error: the pipeline answers it with a
stub result. Only configuration mistakes and model failures reach callers.
"""


class MeowsenseError(Exception):
    """Base class for all meowsense errors."""


class ConfigurationError(MeowsenseError, ValueError):
    """Raised at construction time for an unusable pipeline configuration."""


class InferenceError(MeowsenseError, RuntimeError):
    """Raised when the model backend fails or returns unusable output."""


class SpectrogramError(MeowsenseError, ValueError):
    """Raised when a spectrogram carries no finite positive energy."""

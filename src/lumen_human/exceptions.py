"""
Exception Definitions for Lumen Human.

Following Lumen's contract: each layer defines its own error types, all
rooted at a single package base so callers can catch everything at once.
"""


class HumanError(Exception):
    """Base class for all lumen-human errors."""

    pass


class ConfigError(HumanError):
    """
    Raised when configuration is invalid or malformed.

    @context: Configuration merging, YAML loading, backend selection
    """

    pass


class BackendNotFoundError(ConfigError):
    """
    Raised when the requested compute backend is unknown or unavailable.

    @context: BackendManager.ensure
    """

    pass


class ModelLoadingError(HumanError):
    """Raised when a capability model cannot be loaded."""

    pass


class InvalidInputError(HumanError):
    """Raised when input data is invalid or of an unsupported kind."""

    pass


class InferenceError(HumanError):
    """Raised when a capability model fails during inference."""

    pass


class TensorDisposedError(HumanError):
    """Raised when the data of an already disposed tensor is accessed."""

    pass


__all__ = [
    "HumanError",
    "ConfigError",
    "BackendNotFoundError",
    "ModelLoadingError",
    "InvalidInputError",
    "InferenceError",
    "TensorDisposedError",
]

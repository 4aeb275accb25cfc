"""ycmd language server package root."""

from ycmls.exceptions import BackendError, ConfigurationError, SessionStartError, YcmlsError

__all__ = [
    "__version__",
    "BackendError",
    "ConfigurationError",
    "SessionStartError",
    "YcmlsError",
]

__version__ = "0.1.0"

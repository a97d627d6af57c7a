"""shipkit core -- errors, results, logging, retry, and settings.

Architecture::

    errors.py      Typed error hierarchy with diagnostic codes (ShipkitError)
    result.py      Ok / Err values for required lookups
    logging.py     structlog configuration and LogContext
    retry.py       Bounded retry strategies (ConstantBackoff, RetryContext)
    settings.py    Environment-driven ShipkitSettings (pydantic-settings)
"""

from shipkit.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ExternalToolError,
    ManifestInvalidError,
    MissingOptionalInputError,
    MissingSourceFileError,
    NonRootScriptWarning,
    ResourceUnavailableError,
    ShipkitError,
)
from shipkit.core.result import Err, Ok, Result

__all__ = [
    "ConfigError",
    "Err",
    "ErrorCategory",
    "ErrorContext",
    "ExternalToolError",
    "ManifestInvalidError",
    "MissingOptionalInputError",
    "MissingSourceFileError",
    "NonRootScriptWarning",
    "Ok",
    "ResourceUnavailableError",
    "Result",
    "ShipkitError",
]

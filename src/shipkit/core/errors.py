"""
Diagnostic errors raised and logged by a packaging run.

A run fails with exactly one fatal error, which the CLI prints as
``Error (CODE): message``. Advisory conditions (a missing release-notes file,
a listed file that is not on disk, a lifecycle script outside the package
root) use the same classes with ``fatal = False`` so that they share one
``to_dict()`` shape in JSON logs, but they are only logged.

=========  ========================  ======================================
Code       Class                     Condition
=========  ========================  ======================================
SK100      ManifestInvalidError      manifest lacks package, metadata or id
SK200      ExternalToolError         packager exited non-zero
SK300      ResourceUnavailableError  scratch directory or disk space
SK400      ConfigError               unusable caller input
SK901      MissingOptionalInputError release notes or config file absent
SK902      MissingSourceFileError    listed file absent
SKNONROOT  NonRootScriptWarning      lifecycle script below the root
=========  ========================  ======================================

    >>> error = ManifestInvalidError.missing_element("metadata")
    >>> (error.code, error.fatal, error.to_dict()["context"]["element"])
    ('SK100', True, 'metadata')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Broad area a failure belongs to."""

    VALIDATION = "VALIDATION"     # Manifest structure, XML parsing
    PACKAGER = "PACKAGER"         # External packager process
    STORAGE = "STORAGE"           # Scratch directories, disk space, copies
    CONFIG = "CONFIG"             # Caller-supplied configuration
    INPUT = "INPUT"               # Optional or listed input files
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Where a failure happened.

    Typed fields cover what a packaging failure usually needs to point at:
    the run, the project, the file or element involved, and the command
    line of an external tool. Anything else lands in ``metadata``.

    Attributes:
        run_id: Packaging run identifier
        project: Project name being packaged
        path: File or directory involved in the failure
        element: Manifest element involved in the failure
        command: Command line of the external tool
        exit_code: Exit code of the external tool
        metadata: Any other fields passed to ``with_context``
    """

    run_id: str | None = None
    project: str | None = None
    path: str | None = None
    element: str | None = None
    command: str | None = None
    exit_code: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    _FIELDS = ("run_id", "project", "path", "element", "command", "exit_code")

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, followed by ``metadata``."""
        fields = {name: getattr(self, name) for name in self._FIELDS}
        fields = {name: value for name, value in fields.items() if value is not None}
        return {**fields, **self.metadata}


class ShipkitError(Exception):
    """
    Base exception for all shipkit errors.

    Subclasses set ``code``, ``default_category`` and ``fatal`` as class
    attributes. Fatal errors abort a packaging run and reach the caller as
    the single structured failure of that run; advisory subclasses exist so
    that warnings share the same ``to_dict()`` shape in the logs.

    Examples:
        >>> error = ShipkitError("Something went wrong")
        >>> error.code
        'SK000'
        >>> error.with_context(path="/tmp/x").context.path
        '/tmp/x'
    """

    code: str = "SK000"
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    fatal: bool = True

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **fields: Any) -> ShipkitError:
        """
        Record where the error happened and return ``self``.

            raise ResourceUnavailableError("Disk full").with_context(
                path="/build/obj/shipkit-packing",
            )
        """
        for name, value in fields.items():
            if name in ErrorContext._FIELDS:
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Flat event fields for ``logger.warning("pack.warning", **error.to_dict())``."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "fatal": self.fatal,
        }
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.code})"


# -- fatal -----------------------------------------------------------------


class ManifestInvalidError(ShipkitError):
    """
    The manifest is missing a required element or cannot be parsed.

    Never recovered: a manifest without ``package``/``metadata``/``id`` is
    not a valid package descriptor.
    """

    code = "SK100"
    default_category = ErrorCategory.VALIDATION

    @classmethod
    def missing_element(cls, name: str) -> ManifestInvalidError:
        return cls(
            f"The manifest does not contain a <{name}> XML element. "
            "The manifest file appears to be invalid."
        ).with_context(element=name)


class ExternalToolError(ShipkitError):
    """The external packager exited with a non-zero code."""

    code = "SK200"
    default_category = ErrorCategory.PACKAGER

    def __init__(self, message: str, *, output: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.output = output

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.output:
            result["output"] = self.output
        return result


class ResourceUnavailableError(ShipkitError):
    """A scratch directory could not be prepared, or disk space ran out."""

    code = "SK300"
    default_category = ErrorCategory.STORAGE


class ConfigError(ShipkitError):
    """Caller-supplied configuration is unusable."""

    code = "SK400"
    default_category = ErrorCategory.CONFIG


# -- advisory (logged only) -------------------------------------------------


class MissingOptionalInputError(ShipkitError):
    """A release-notes or replacement configuration file was named but is absent."""

    code = "SK901"
    default_category = ErrorCategory.INPUT
    fatal = False


class MissingSourceFileError(ShipkitError):
    """A listed content or binary file does not exist on disk."""

    code = "SK902"
    default_category = ErrorCategory.INPUT
    fatal = False


class NonRootScriptWarning(ShipkitError):
    """A deployment lifecycle script sits outside the package root."""

    code = "SKNONROOT"
    default_category = ErrorCategory.INPUT
    fatal = False


# -- helpers ---------------------------------------------------------------


def error_code(error: Exception) -> str:
    """Diagnostic code for any exception.

    Foreign exceptions get a stable ``SKX`` code derived from their type name.
    """
    if isinstance(error, ShipkitError):
        return error.code
    return f"SKX{sum(type(error).__name__.encode()) % 1000:03d}"

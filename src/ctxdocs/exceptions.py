from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class CtxDocsError(Exception):
    """Base exception for errors in the ctxdocs package."""

    message: str = "ctx operation failed."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class NotInitializedError(CtxDocsError):
    """Raised when a project-scoped operation runs outside an initialized project."""

    root: Path | None = None
    message: str = "Project not initialized. Run 'ctx init .' first."


@dataclass(frozen=True)
class GlobalNotInitializedError(CtxDocsError):
    """Raised when a global-scoped operation runs before `ctx init`."""

    home: Path | None = None
    message: str = "Global ctx not initialized. Run 'ctx init' first."


@dataclass(frozen=True)
class FrontmatterParseError(CtxDocsError):
    """Raised when a context document's metadata block is missing or malformed."""

    identifier: str = ""
    message: str = "Failed to parse context metadata."

    def __str__(self) -> str:
        return f"{self.identifier}: {self.message}" if self.identifier else self.message


@dataclass(frozen=True)
class UnsupportedFormatError(FrontmatterParseError):
    """Raised when a context document has an extension the parser does not handle."""

    message: str = "Unsupported context file format."


@dataclass(frozen=True)
class ContextValidationError(CtxDocsError):
    """Raised when a context document misses required preview fields."""

    identifier: str = ""
    errors: tuple[str, ...] = field(default_factory=tuple)
    message: str = "Context document failed validation."

    def __str__(self) -> str:
        details = ", ".join(self.errors)
        return f"{self.identifier}: {details or self.message}"


@dataclass(frozen=True)
class ContextExistsError(CtxDocsError):
    """Raised when writing a context document over an existing file without --force."""

    path: Path | None = None
    message: str = "Context file already exists. Use --force to overwrite."


@dataclass(frozen=True)
class InvalidOptionError(CtxDocsError):
    """Raised when a command-line option value cannot be interpreted."""

"""
Exception types raised by the Folio build.
"""


class FolioError(Exception):
    """Base class for all Folio errors."""


class ConfigError(FolioError):
    """Invalid or missing configuration (including unknown event names)."""


class ArticleError(FolioError):
    """A problem that aborts processing of a single article."""

    def __init__(self, message, rel_path=None):
        self.rel_path = rel_path
        if rel_path:
            message = f"{message} ({rel_path})"
        super().__init__(message)


class TemplateNotFoundError(ArticleError):
    """No layout could be found for an article."""


class TaxonomyError(FolioError):
    """Lookup of a taxonomy or taxonomy type that does not exist."""


class ImageError(FolioError):
    """Image registry lookup or processing failure."""


class PaginationError(FolioError):
    """Bad pagination parameters."""


class RenderError(FolioError):
    """Rendering or writing an article failed."""

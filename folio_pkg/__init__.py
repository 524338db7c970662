"""
Folio - a plugin-driven static site generator.

Folio reads a tree of Markdown/HTML content with YAML front matter, derives
URLs, dates, taxonomies, breadcrumbs and schema.org metadata for each
article, builds responsive image variants, and renders everything through
Jinja2 layouts into a deployable static site.
"""

__version__ = "1.0.0"

from .core import Folio
from .events import Event

__all__ = ['Folio', 'Event']

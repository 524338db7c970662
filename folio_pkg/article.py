"""
The article record threaded through building, derivation and rendering.
"""

import os
from typing import Any, Dict, List, Optional

from .content import MultiFormat
from .dates import ArticleDate


class Article:
    """
    One source file (or synthetic page) on its way to the output tree.

    Front matter lives in ``data``. Everything derived from it has an
    explicit attribute. Plugins keep their own state in ``extensions`` under
    their own namespace.
    """

    def __init__(self, file_path: str, site_dir: str, data: Optional[Dict[str, Any]] = None,
                 body: str = '', is_dummy: bool = False):
        self.file_path = file_path
        self.site_dir = site_dir
        self.rel_path = '/' + os.path.relpath(file_path, site_dir).replace(os.sep, '/')
        self.basename = os.path.basename(file_path)
        self.data: Dict[str, Any] = data or {}
        self.body = body
        self.is_dummy = is_dummy
        self.is_plain_file = False

        # Classification and layout
        self.type: Optional[str] = None
        self.layout: Optional[str] = None
        self.layout_path: Optional[str] = None
        self.layout_type = 'html'

        # Identity
        self.permalink: Optional[str] = None
        self.url: Optional[str] = None
        self.output_file_name: Optional[str] = None
        self.base_fn: Optional[str] = None

        # Dates
        self.published_date: Optional[ArticleDate] = None
        self.modified_date: Optional[ArticleDate] = None
        self.published: Optional[bool] = None

        # Content
        self.formats: Dict[str, MultiFormat] = {}
        self.abstract_synthesized = False

        # Names
        self.name: Optional[str] = None
        self.headline: Optional[str] = None
        self.description: Optional[str] = None

        self.authors: List[Dict[str, Any]] = []
        self.taxonomies: Dict[str, List[str]] = {}

        # Structured extras
        self.citations: List[Dict[str, Any]] = []
        self.breadcrumbs: List[Dict[str, str]] = []
        self.bc_str = ''
        self.faq: Optional[Dict[str, Any]] = None
        self.howto: Optional[Dict[str, Any]] = None
        self.products: Dict[Any, Dict[str, Any]] = {}
        self.reviews: Dict[Any, Dict[str, Any]] = {}
        self.images: Dict[Any, Dict[str, Any]] = {}
        self.paginate: Optional[Dict[str, Any]] = None
        self.pagination = None

        # Effort
        self.words = 0
        self.reading_time = 0
        self.reading_time_rounded = 0

        self.schema: Optional[Dict[str, Any]] = None
        self.schema_json = ''

        self.extensions: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Multi-format content accessors
    # ------------------------------------------------------------------

    def get_format(self, name: str) -> Optional[MultiFormat]:
        return self.formats.get(name)

    @property
    def content(self) -> Optional[MultiFormat]:
        return self.formats.get('content')

    @property
    def summary(self) -> Optional[MultiFormat]:
        return self.formats.get('summary')

    @property
    def abstract(self) -> Optional[MultiFormat]:
        return self.formats.get('abstract')

    @property
    def content_rss(self) -> Optional[MultiFormat]:
        return self.formats.get('content_rss') or self.formats.get('content')

    # ------------------------------------------------------------------
    # Taxonomies and extensions
    # ------------------------------------------------------------------

    @property
    def tags(self) -> List[str]:
        return self.taxonomies.get('tags', [])

    @property
    def article_section(self) -> List[str]:
        return self.taxonomies.get('sections', [])

    @property
    def article_types(self) -> List[str]:
        return self.taxonomies.get('types', [])

    def ext(self, namespace: str, default: Any = None) -> Any:
        """Get (creating if needed) a plugin's extension data."""
        if namespace not in self.extensions and default is not None:
            self.extensions[namespace] = default
        return self.extensions.get(namespace)

    def get(self, key: str, default: Any = None) -> Any:
        """Front matter lookup."""
        return self.data.get(key, default)

    @property
    def dirname(self) -> str:
        return os.path.dirname(self.rel_path)

    @property
    def fn(self) -> str:
        return os.path.splitext(self.basename)[0]

    def __repr__(self):
        return f"Article({self.rel_path!r}, type={self.type!r}, url={self.url!r})"

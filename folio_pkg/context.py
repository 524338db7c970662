"""
The run context shared by the build phases, plugins and templates.
"""

import logging
import os
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .collection import ArticleIndex
from .dates import ArticleDate
from .events import Event, EventBus, ENRICHMENT_EVENTS

APP_DIR = os.path.dirname(os.path.abspath(__file__))


class RunContext:
    """State for a single build run."""

    def __init__(self, settings, site_dir: str):
        self.settings = settings
        self.site_dir = os.path.abspath(site_dir)
        self.app_dir = APP_DIR
        self.logger = logging.getLogger('Folio')

        locations = settings.get('locations', {})
        self.output_dir = os.path.join(self.site_dir, locations.get('site', '_site'))
        self.cache_dir = os.path.join(self.site_dir, locations.get('cache', '_cache'))
        self.temp_dir = os.path.join(self.site_dir, locations.get('temp', '_temp'))
        self.layout_dirs = [
            os.path.join(self.site_dir, locations.get('layouts', '_layouts')),
            os.path.join(self.app_dir, 'layouts'),
        ]

        self.bus = EventBus()
        self.index = ArticleIndex(settings.get('taxonomy_spec', {}),
                                  settings.get('article_spec.url_collision', 'warn'))
        self.images = None
        self.paginate: Dict[str, Any] = {}
        self.render_queue: List[Any] = []
        self.parsers: Dict[str, Callable] = {}
        self.renderers: Dict[str, Callable] = {}
        self.early_parse: List[str] = list(settings.get('file_system.early_parse', []))
        self.extensions: Dict[str, Any] = {}
        self.counts = {
            'articles': 0,
            'posts': 0,
            'pages': 0,
            'words': 0,
            'images': 0,
            'copied': 0,
            'failed': 0,
        }

    @property
    def cfg(self) -> Dict[str, Any]:
        return self.settings.as_dict()

    @property
    def site_url(self) -> str:
        return self.settings.get('site.url') or ''

    def ext(self, namespace: str, default: Any = None) -> Any:
        if namespace not in self.extensions and default is not None:
            self.extensions[namespace] = default
        return self.extensions.get(namespace)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: Union[Event, str], handler: Callable, priority: int = 50) -> None:
        self.bus.on(event, handler, priority)

    async def emit(self, event: Union[Event, str], *args: Any) -> None:
        await self.bus.emit(event, *args)

    async def emit_for_article(self, event: Event, article) -> bool:
        """
        Emit an article event, applying the failure policy for that event.

        Enrichment events log handler failures and return False; any other
        event lets the failure propagate.
        """
        if event not in ENRICHMENT_EVENTS:
            await self.bus.emit(event, article)
            return True
        try:
            await self.bus.emit(event, article)
        except Exception as e:
            self.logger.error(f"Handler for {event.name} failed on {article.rel_path}: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Parser and renderer registries
    # ------------------------------------------------------------------

    def set_extension_parser(self, exts: Union[str, Iterable[str]], parser: Callable) -> None:
        """Register a parser for one or more file extensions (without the dot)."""
        if isinstance(exts, str):
            exts = [exts]
        for ext in exts:
            ext = ext.lstrip('.').lower()
            if ext in self.parsers:
                self.logger.info(f"Parser for '{ext}' files replaced")
            self.parsers[ext] = parser

    def set_extension_renderer(self, layout_type: str, renderer: Callable) -> None:
        if layout_type in self.renderers:
            self.logger.info(f"Renderer for '{layout_type}' layouts replaced")
        self.renderers[layout_type] = renderer

    def get_parser(self, ext: str) -> Optional[Callable]:
        return self.parsers.get(ext.lstrip('.').lower())

    def queue_for_render(self, article) -> None:
        self.render_queue.append(article)

    # ------------------------------------------------------------------
    # Template helpers
    # ------------------------------------------------------------------

    def qualify(self, url: str) -> str:
        """Prefix a site-relative URL with the site URL."""
        if not url or url.startswith(('http://', 'https://', '//')):
            return url
        base = self.site_url.rstrip('/')
        if not url.startswith('/'):
            url = '/' + url
        return base + url

    def link(self, text: str, url: str, title: str = None, cls: str = None) -> str:
        attrs = f'href="{url}"'
        if title:
            attrs += f' title="{title}"'
        if cls:
            attrs += f' class="{cls}"'
        return f'<a {attrs}>{text}</a>'

    def asset(self, path: str) -> str:
        assets_url = self.settings.get('site.assets_url', '/assets').rstrip('/')
        return assets_url + '/' + path.lstrip('/')

    def x(self, key: str) -> str:
        """Translate a short UI string for the site language."""
        strs = self.settings.get('lang_strs', {})
        lang = (self.settings.get('site.lang') or 'en')
        for candidate in (lang, lang.split('_')[0].split('-')[0], 'en'):
            if candidate in strs and key in strs[candidate]:
                return strs[candidate][key]
        return key

    def convert_date(self, value, fmt: str = None) -> str:
        dt = ArticleDate(value)
        return dt.dt.strftime(fmt) if fmt else dt.disp_date

    def img(self, tag) -> Any:
        """Look up a registered image by its site-relative path."""
        if self.images is None:
            return None
        return self.images.get(tag)

    def template_globals(self) -> Dict[str, Any]:
        return {
            'cfg': self.cfg,
            'site': self.cfg.get('site', {}),
            'ctx': self,
            'index': self.index,
            'link': self.link,
            'qualify': self.qualify,
            'asset': self.asset,
            'x': self.x,
            'img': self.img,
            'convert_date': self.convert_date,
            'get_taxonomy_type': self.index.get_taxonomy_type,
            'get_taxonomy': self.index.get_taxonomy,
        }

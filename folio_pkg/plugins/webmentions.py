"""
Received webmentions: fetched once per run, cached as JSON under the site
and attached to the articles they target.
"""

import asyncio
import html
import json
import logging
import os

import requests

from ..events import Event

DEFAULT_WEBMENTIONS_SPEC = {
    'on': False,
    'id': None,
    'token': None,
    'mentions_api': 'https://webmention.io/api/mentions.jf2',
    'per_page': 10000,
    'types': ['mention-of', 'in-reply-to'],
    'own_urls': [],
    'wm_dir': '_webmentions',
    'cache_file': 'received.json',
    'fetch_in_dev': False,
    'timeout': 30,
}

logger = logging.getLogger('Folio.Webmentions')


class WebmentionsProcessor:

    def __init__(self, ctx, spec, session=None):
        self.ctx = ctx
        self.spec = spec
        self.session = session or requests.Session()
        self.mentions = []

    @property
    def cache_path(self):
        return os.path.join(self.ctx.site_dir, self.spec['wm_dir'], self.spec['cache_file'])

    def load_cache(self):
        if not os.path.isfile(self.cache_path):
            return []
        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                return json.load(f) or []
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable webmentions cache {self.cache_path}: {e}")
            return []

    def save_cache(self, mentions):
        os.makedirs(os.path.dirname(self.cache_path), exist_ok=True)
        with open(self.cache_path, 'w', encoding='utf-8') as f:
            json.dump(mentions, f, indent=1)

    def fetch(self):
        """Fetch every received mention from the API."""
        params = {'domain': self.spec['id'], 'per-page': self.spec['per_page']}
        if self.spec.get('token'):
            params['token'] = self.spec['token']
        response = self.session.get(self.spec['mentions_api'], params=params, timeout=self.spec['timeout'])
        response.raise_for_status()
        return response.json().get('children', [])

    async def load(self):
        """Refresh from the API when allowed, else (or on failure) use the cache."""
        cached = self.load_cache()
        if self.ctx.settings.get('site.dev_mode') and not self.spec.get('fetch_in_dev'):
            self.mentions = cached
            return self.mentions
        try:
            self.mentions = await asyncio.to_thread(self.fetch)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not fetch webmentions, using cached copy: {e}")
            self.mentions = cached
            return self.mentions
        self.save_cache(self.mentions)
        logger.info(f"Fetched {len(self.mentions)} webmention(s).")
        return self.mentions

    def is_own(self, entry):
        own = self.spec.get('own_urls') or []
        author_url = (entry.get('author') or {}).get('url') or ''
        source = entry.get('wm-source') or entry.get('url') or ''
        return any(author_url.startswith(u) or source.startswith(u) for u in own)

    def mentions_for_url(self, url):
        """Displayable mentions targeting ``url``."""
        found = []
        for entry in self.mentions:
            if entry.get('wm-target') != url:
                continue
            if entry.get('wm-property') not in self.spec['types']:
                continue
            author = entry.get('author') or {}
            content = entry.get('content') or {}
            if not (author.get('name') and entry.get('published') and content):
                continue
            if self.is_own(entry):
                continue
            item = dict(entry)
            item['content_html'] = html.escape(content.get('text') or '')
            found.append(item)
        return found

    def close(self):
        self.session.close()


class WebmentionsPlugin:

    def __init__(self, ctx):
        self.ctx = ctx
        ctx.settings.merge_section('webmentions_spec', DEFAULT_WEBMENTIONS_SPEC, preserve=True)
        self.spec = ctx.settings.section('webmentions_spec')
        self.processor = None
        if not self.spec.get('on'):
            return
        if not self.spec.get('id'):
            logger.error("Webmentions plugin enabled but no 'webmentions_spec.id' specified.")
            return
        self.processor = WebmentionsProcessor(ctx, self.spec)
        ctx.on(Event.BEFORE_PARSE_LATE, self.before_parse_late)
        ctx.on(Event.AFTER_ARTICLE_PARSER_RUN, self.after_article_parser_run)
        ctx.on(Event.AFTER_PARSE_LATE, self.after_parse_late)

    async def before_parse_late(self, ctx):
        logger.info("Processing webmentions received.")
        await self.processor.load()

    def after_article_parser_run(self, article):
        mentions = self.processor.mentions_for_url(self.ctx.qualify(article.url))
        article.extensions['webmentions'] = mentions
        if mentions:
            logger.info(f"Article {article.url} has {len(mentions)} webmention(s).")

    def after_parse_late(self, ctx):
        self.processor.close()


def init(ctx):
    ctx.ext('plugins', {})['webmentions'] = WebmentionsPlugin(ctx)

"""
Link pre-processing: ``(((text|url)))`` and ``(((text|url|title)))`` in
rendered content become anchors just before the article is rendered.
"""

import logging
import re

from ..events import Event

LINK_RE = re.compile(r'\(\(\((.+?)\|(.+?)\)\)\)')
LEFTOVER_RE = re.compile(r'\(\(\((.+?)\)\)\)')
ESCAPES = (('%(%(%(', '((('), ('%)%)%)', ')))'))

logger = logging.getLogger('Folio.PreLinks')


def expand_links(markup, link, qualify=None):
    """Replace every link shorthand in ``markup``."""

    def replace(m):
        text, rest = m.group(1), m.group(2)
        if text.startswith('image-'):
            return m.group(0)
        url, _, title = rest.partition('|')
        url = url.strip()
        if qualify is not None:
            url = qualify(url)
        return link(text, url, title.strip() or None)

    return LINK_RE.sub(replace, markup)


def unescape(markup):
    for escaped, literal in ESCAPES:
        markup = markup.replace(escaped, literal)
    return markup


def article_prerender(ctx, article):
    for fmt in ('content', 'abstract'):
        mf = article.formats.get(fmt)
        if not mf or not mf.html:
            continue
        page_html = expand_links(mf.html, ctx.link)
        if LEFTOVER_RE.search(page_html):
            logger.warning(f"Pre-processing '(((...)))' elements still remain in {fmt} ({article.rel_path})")
        mf.set_html(unescape(page_html))

        rss_fmt = article.formats.get(fmt + '_rss')
        if rss_fmt is not None and rss_fmt.html:
            rss_fmt.set_html(unescape(expand_links(rss_fmt.html, ctx.link, ctx.qualify)))


def init(ctx):
    ctx.on(Event.ARTICLE_PRERENDER, lambda article: article_prerender(ctx, article), priority=60)

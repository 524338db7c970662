"""
Images plugin: registers the image parser, picks each article's
representative images and expands ``(((image-...)))`` tags before render.
"""

import html
import logging
import re

from ..events import Event
from ..images import DEFAULT_IMAGE_SPEC, ImageRegistry

IMAGE_TAG_RE = re.compile(r'\(\(\(image-(.+?)\)\)\)')
IMAGE_PURPOSES = ('og', 'twitter', 'featured', 'rss', 'summary', 'icon')
ALLOWED_PARAMS = ('alt', 'caption', 'credit', 'title', 'link', 'class', 'fig_class', 'size', 'sizes', 'lazy')

logger = logging.getLogger('Folio.ImageParser')


def parse_image_tag(raw, rel_path=None):
    """
    Split ``tag|name=value|...`` into the tag and a parameter dict.

    Unknown parameters and parameters without ``=`` are logged and ignored.
    """
    parts = raw.split('|')
    tag = parts[0].strip()
    params = {}
    for working in parts[1:]:
        if '=' not in working:
            logger.error(f"Image tag parameters must be in the form 'x=y' ({rel_path})")
            continue
        name, value = working.split('=', 1)
        name = name.strip()
        if name not in ALLOWED_PARAMS:
            logger.warning(f"Image tag does not support parameter '{name}' ({rel_path})")
            continue
        params[name] = value.strip()
    return tag, params


def image_entries(article):
    """
    The article's images keyed by tag.

    Front-matter ``images`` entries come first; an image referenced only from
    the content by URL is added under its URL.
    """
    entries = {}
    for key, entry in article.images.items():
        if isinstance(entry, str):
            entry = {'url': entry}
        if not isinstance(entry, dict):
            continue
        entry = dict(entry)
        entry.setdefault('url', entry.get('src'))
        entries[str(entry.get('tag', key))] = entry

    for fmt in ('content', 'abstract'):
        mf = article.formats.get(fmt)
        if not mf or not mf.html:
            continue
        for m in IMAGE_TAG_RE.finditer(mf.html):
            tag, params = parse_image_tag(m.group(1), article.rel_path)
            if tag not in entries:
                entries[tag] = dict(params, url=tag)
    return entries


def select_images(article, registry, spec, default_image=None):
    """
    Choose the image URL for each purpose.

    An image flagged for a purpose wins. Unflagged ``featured`` falls back to
    the first resizeable image, then the first image of any kind, then the
    site default. ``featured`` back-fills ``og``, which back-fills
    ``twitter`` and ``rss``.
    """
    default_size = spec.get('default_size') or 1024
    selected = dict.fromkeys(IMAGE_PURPOSES)
    first_resizeable = None
    first_any = None

    for tag, entry in image_entries(article).items():
        record = registry.get(entry.get('url') or '')
        if record is None:
            logger.warning(f"Image for tag {tag}, URL {entry.get('url')} cannot be found ({article.rel_path})")
            continue

        if record.has_subimages() and first_resizeable is None:
            first_resizeable = record
        if first_any is None:
            first_any = record

        for purpose in IMAGE_PURPOSES:
            if not entry.get(purpose):
                continue
            if record.has_subimages():
                if purpose in ('icon', 'summary'):
                    chosen = record.smallest
                else:
                    chosen = record.variant_for(default_size)
            else:
                chosen = record
            selected[purpose] = chosen.as_dict()

    if not selected['featured']:
        if spec.get('use_first_resizeable_as_featured') and first_resizeable is not None:
            selected['featured'] = first_resizeable.variant_for(default_size).as_dict()
        elif spec.get('use_first_any_as_featured') and first_any is not None:
            selected['featured'] = first_any.variant_for(default_size).as_dict()
        elif default_image:
            selected['featured'] = {'url': default_image, 'width': None, 'height': None}

    if selected['featured'] and not selected['og']:
        selected['og'] = selected['featured']
    if selected['og']:
        for purpose in ('twitter', 'rss'):
            if not selected[purpose]:
                selected[purpose] = selected['og']

    return {purpose: value for purpose, value in selected.items() if value}


def image_html(record, params, spec, qualify=None, lazy=True):
    """Build the ``<img>`` (plus optional link and ``<figure>``) for a record."""
    q = qualify or (lambda u: u)
    size = int(params.get('size') or spec.get('default_size') or 1024)
    main = record.variant_for(size)

    attrs = [f'src="{q(main.url)}"']
    if record.has_subimages():
        srcset = ', '.join(f"{q(sub.url)} {width}w" for width, sub in record.subs.items())
        attrs.append(f'srcset="{srcset}"')
        attrs.append(f'sizes="{params.get("sizes", "100vw")}"')
    attrs.append(f'alt="{html.escape(params.get("alt", ""), quote=True)}"')
    if params.get('title'):
        attrs.append(f'title="{html.escape(params["title"], quote=True)}"')
    if main.width and main.height:
        attrs.append(f'width="{main.width}" height="{main.height}"')
    if lazy and str(params.get('lazy', 'true')).lower() != 'false':
        attrs.append('loading="lazy"')
    if params.get('class'):
        attrs.append(f'class="{params["class"]}"')
    out = f"<img {' '.join(attrs)} />"

    link = params.get('link') or spec.get('default_link')
    if link and link != 'none':
        target = record.biggest.url if link == 'self' and record.has_subimages() else \
            (record.url if link == 'self' else link)
        out = f'<a href="{q(target)}">{out}</a>'

    captions = [params[k] for k in ('caption', 'credit') if params.get(k)]
    if captions:
        fig_class = f' class="{params["fig_class"]}"' if params.get('fig_class') else ''
        out = f"<figure{fig_class}>{out}<figcaption>{' '.join(captions)}</figcaption></figure>"
    return out


class ImagesPlugin:

    def __init__(self, ctx):
        self.ctx = ctx
        ctx.settings.merge_section('image_spec', DEFAULT_IMAGE_SPEC, preserve=True)
        self.spec = ctx.settings.section('image_spec')
        self.registry = ImageRegistry(ctx.site_dir, ctx.cache_dir, self.spec)
        ctx.images = self.registry

        exts = self.spec.get('exts', [])
        ctx.set_extension_parser(exts, self.parse)
        for ext in exts:
            if ext not in ctx.early_parse:
                ctx.early_parse.append(ext)

        ctx.on(Event.BEFORE_PARSE_EARLY, self.before_parse_early)
        ctx.on(Event.AFTER_PARSE_EARLY, self.after_parse_early)
        ctx.on(Event.AFTER_ARTICLE_PARSER_RUN, self.after_article_parser_run, priority=20)
        ctx.on(Event.ARTICLE_PRERENDER, self.article_prerender, priority=40)

    async def parse(self, file_path):
        record = await self.registry.resolve(file_path)
        self.ctx.counts['images'] += 1
        return record

    def before_parse_early(self, ctx):
        # Image spec may have been overridden after plugin init.
        self.registry.cache_check = bool(ctx.settings.get('image_spec.cache_check', True))
        if self.registry.cache_check:
            logger.info("Parsing images.")
            self.registry.load_cache()
        else:
            logger.info("Parsing images (no cache check).")

    def after_parse_early(self, ctx):
        self.registry.save_cache()
        copied = self.registry.copy_to_output(ctx.output_dir)
        logger.info(f"Copied {copied} image file(s) to {ctx.output_dir}")

    def after_article_parser_run(self, article):
        default_image = self.ctx.settings.get('site.default_article_image')
        selected = select_images(article, self.registry, self.spec, default_image)
        article.ext('images', {})['selected'] = selected

    def article_prerender(self, article):
        entries = image_entries(article)
        for fmt in ('content', 'abstract'):
            mf = article.formats.get(fmt)
            if not mf or not mf.html or '(((image-' not in mf.html:
                continue
            rss_fmt = article.formats.get(fmt + '_rss')
            rss_html = rss_fmt.html if rss_fmt else None
            page_html = mf.html

            for m in IMAGE_TAG_RE.finditer(mf.html):
                tag, params = parse_image_tag(m.group(1), article.rel_path)
                entry = entries.get(tag, {})
                record = self.registry.get(entry.get('url') or tag)
                if record is None:
                    logger.error(f"Could not find an image with ID '{tag}' ({article.rel_path})")
                    continue
                merged = {k: v for k, v in entry.items() if k in ALLOWED_PARAMS}
                merged.update(params)
                page_html = page_html.replace(m.group(0), image_html(record, merged, self.spec), 1)
                if rss_html is not None:
                    rss_html = rss_html.replace(
                        m.group(0), image_html(record, merged, self.spec, self.ctx.qualify, lazy=False), 1)

            mf.set_html(page_html)
            if rss_fmt is not None:
                rss_fmt.set_html(rss_html)


def init(ctx):
    ctx.ext('plugins', {})['images'] = ImagesPlugin(ctx)

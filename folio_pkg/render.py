"""
Renderer dispatch and output writing.
"""

import asyncio
import logging
import os

from jinja2 import (Environment, FileSystemLoader, StrictUndefined, TemplateError,
                    TemplateNotFound, TemplateSyntaxError)

from .errors import RenderError
from .events import Event
from .frontmatter import LAYOUT_CLOSE, LAYOUT_OPEN, split_front_matter


class LayoutLoader(FileSystemLoader):
    """FileSystemLoader that drops a layout's ``<!--@ ... @-->`` front matter."""

    def get_source(self, environment, template):
        source, filename, uptodate = super().get_source(environment, template)
        header, body = split_front_matter(source, LAYOUT_OPEN, LAYOUT_CLOSE, partial=True)
        if header is not None:
            source = body.lstrip('\n')
        return source, filename, uptodate


class TemplateRenderer:
    """Renders articles through Jinja2 layouts. Undefined variables are errors."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.logger = logging.getLogger('Folio.TemplateRenderer')
        self.env = Environment(
            loader=LayoutLoader(ctx.layout_dirs),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.globals.update(ctx.template_globals())
        self.env.filters['qualify'] = ctx.qualify
        self.env.filters['asset'] = ctx.asset

    def __call__(self, article):
        return self.render(article)

    def render(self, article):
        """Render an article to a string."""
        try:
            template = self.env.get_template(article.layout)
            return template.render(article=article, page=article)
        except (TemplateNotFound, TemplateSyntaxError) as e:
            raise RenderError(f"Template error for {article.rel_path}: {e}")
        except TemplateError as e:
            raise RenderError(f"Rendering failed for {article.rel_path}: {e}")


class OutputWriter:
    """Runs queued articles through their renderers and writes the results."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.logger = logging.getLogger('Folio.OutputWriter')
        self.errors = []
        self.written = 0

    def output_path(self, article):
        return os.path.join(self.ctx.output_dir, article.output_file_name.lstrip('/'))

    async def render_article(self, article):
        await self.ctx.emit_for_article(Event.ARTICLE_PRERENDER, article)

        renderer = self.ctx.renderers.get(article.layout_type)
        if renderer is None:
            raise RenderError(f"No renderer registered for '{article.layout_type}' layouts ({article.rel_path})")

        output = renderer(article)
        if asyncio.iscoroutine(output):
            output = await output

        path = self.output_path(article)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(output)
        except (IOError, OSError) as e:
            raise RenderError(f"Failed to write {path}: {e}")
        self.written += 1
        self.logger.debug(f"Generated HTML: {path}")
        return path

    async def _guarded(self, article):
        try:
            return await self.render_article(article)
        except Exception as e:
            self.errors.append((article.rel_path, e))
            return None

    async def render_all(self, articles=None):
        """
        Render every queued article concurrently.

        A failed article does not stop the others; failures are collected in
        ``errors`` and reported at the end.

        Returns:
            Number of failures
        """
        articles = list(self.ctx.render_queue if articles is None else articles)
        self.errors = []
        await asyncio.gather(*(self._guarded(a) for a in articles))
        report_errors(self.logger, 'rendering', self.errors,
                      self.ctx.settings.get('site.error_control.show_all_errors', False))
        return len(self.errors)


def report_errors(logger, phase, errors, show_all=False):
    """Log collected per-file errors: all of them, or the first plus a count."""
    if not errors:
        return
    if show_all:
        for rel_path, err in errors:
            logger.error(f"Error during {phase} of {rel_path}: {err}")
    else:
        rel_path, err = errors[0]
        logger.error(f"Error during {phase} of {rel_path}: {err}")
        if len(errors) > 1:
            logger.error(f"... and {len(errors) - 1} more {phase} error(s). Use --verbose to show them all.")

"""
Pagination of article collections.

An article that declares ``paginate: {data: ..., per_page: ...}`` becomes
page 1 of a listing. Pages 2..N are synthesized from a dummy layout whose
``-page-``, ``-title-``, ``-description-``, ``-start-``, ``-end-``,
``-base-`` and ``-layout-`` tokens are filled in, then parsed like any
other article.
"""

import logging
import math
import os

from .errors import FolioError, PaginationError, TaxonomyError
from .frontmatter import fill_tokens
from .utils import slugify


class Paginate:
    """Splits an ordered list of articles into fixed-size pages."""

    def __init__(self, articles, per_page=20, base_url='/'):
        if not per_page or int(per_page) < 1:
            raise PaginationError(f"Invalid articles-per-page value: {per_page}")
        self.articles = list(articles)
        self.per_page = int(per_page)
        self.base_url = base_url
        self.total_pages = math.ceil(len(self.articles) / self.per_page)

    def page(self, num=1):
        if num < 1:
            raise PaginationError(f"Invalid pagination page number: {num}.")
        if num > max(self.total_pages, 1):
            raise PaginationError(f"Pagination page number {num} does not exist.")
        start = (num - 1) * self.per_page
        return self.articles[start:start + self.per_page]

    def page_url(self, num):
        if num == 1:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/page/{num}/"

    def view(self, num):
        return PageView(self, num)


class PageView:
    """One page of a Paginate, as seen by a template."""

    def __init__(self, paginate, num):
        self.paginate = paginate
        self.num = num
        self.articles = paginate.page(num)
        self.total_pages = paginate.total_pages

    @property
    def prev_url(self):
        return self.paginate.page_url(self.num - 1) if self.num > 1 else None

    @property
    def next_url(self):
        return self.paginate.page_url(self.num + 1) if self.num < self.total_pages else None

    @property
    def start(self):
        return (self.num - 1) * self.paginate.per_page + 1

    @property
    def end(self):
        return self.start + len(self.articles) - 1


class PaginationProcessor:

    def __init__(self, ctx, pipeline):
        self.ctx = ctx
        self.pipeline = pipeline
        self.logger = logging.getLogger('Folio.Paginate')

    def find_dummy(self, name):
        for layout_dir in self.ctx.layout_dirs:
            candidate = os.path.join(layout_dir, name)
            if os.path.isfile(candidate):
                return candidate
        return None

    def fill_dummy(self, template, source, page, per_page):
        start = (page - 1) * per_page + 1
        reps = {
            '-page-': str(page),
            '-title-': str(source.name or self.ctx.settings.get('site.title', '')),
            '-description-': str(source.description or self.ctx.settings.get('site.description', '')),
            '-start-': str(start),
            '-end-': str(start + per_page - 1),
            '-base-': source.url.rstrip('/'),
            '-layout-': source.layout,
        }
        return fill_tokens(template, reps, source.rel_path)

    async def process(self):
        """Expand every registered pagination. Returns (rel_path, error) pairs."""
        errors = []
        for url, source in list(self.ctx.paginate.items()):
            try:
                await self.paginate_article(source, errors)
            except FolioError as e:
                errors.append((source.rel_path, e))
        return errors

    async def paginate_article(self, source, errors):
        """Paginate one article. Failures of single generated pages are appended to ``errors``."""
        params = source.paginate
        try:
            articles = self.ctx.index.resolve_collection(params['data'])
        except TaxonomyError as e:
            raise PaginationError(f"Pagination data '{params['data']}' not found: {e}")
        articles = [a for a in articles if not a.is_dummy and a.published]

        per_page = params.get('per_page') or self.ctx.settings.get('paginate.per_page', 20)
        pag = Paginate(articles, per_page, source.url)
        alias = params.get('alias', 'pagination')

        source.pagination = pag.view(1)
        source.extensions[alias] = source.pagination
        self.logger.info(f"Paginating {source.rel_path}: {len(articles)} articles, {pag.total_pages} pages")

        if pag.total_pages < 2:
            return

        dummy_name = params.get('dummy') or self.ctx.settings.get('paginate.dummy')
        dummy_path = self.find_dummy(dummy_name)
        if dummy_path is None:
            raise PaginationError(f"Could not find dummy layout '{dummy_name}'.")
        with open(dummy_path, 'r', encoding='utf-8') as f:
            dummy = f.read()

        out_dir = os.path.join(self.ctx.temp_dir, 'dummy', slugify(source.url.strip('/')) or 'home')
        os.makedirs(out_dir, exist_ok=True)
        for page in range(2, pag.total_pages + 1):
            file_name = os.path.join(out_dir, f"{page}.md")
            try:
                with open(file_name, 'w', encoding='utf-8') as f:
                    f.write(self.fill_dummy(dummy, source, page, pag.per_page))
                article = await self.pipeline.parse(file_name, is_dummy=True)
            except FolioError as e:
                errors.append(('/' + os.path.relpath(file_name, self.ctx.site_dir).replace(os.sep, '/'), e))
                continue
            article.pagination = pag.view(page)
            article.extensions[alias] = article.pagination

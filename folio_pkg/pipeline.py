"""
Article derivation pipeline.

An article built by ArticleBuilder goes through a fixed sequence of steps
that derive its dates, URL, authors, names, descriptions, taxonomies,
citations, breadcrumbs, FAQ, reading effort and publication state, and
finally commit it to the global indices. Schema metadata is built after
the AFTER_ARTICLE_PARSER_RUN event, once plugins have had their say.
"""

import html
import logging
import os
import re
import time

import yaml

from .breadcrumbs import breadcrumb_string, build_breadcrumbs
from .builder import ArticleBuilder
from .citations import process_citations
from .content import MultiFormat
from .dates import ArticleDate, DEFAULT_DATE_FORMAT, DEFAULT_TIME_FORMAT, file_birth_time, file_modified_time
from .errors import ArticleError
from .events import Event
from .frontmatter import parse_front_matter
from .schema import build_schema, schema_to_json
from .utils import deep_merge, humanize, make_list, truncate

TOKEN_RE = re.compile(r':(year|month|day|fn|path)')


def strip_date_prefix(fn, type_rule):
    """Drop the leading date segment from a post-like file name."""
    grab = (type_rule or {}).get('fn_grab_len')
    fn_start = (type_rule or {}).get('fn_start')
    if grab and (not fn_start or re.search(fn_start, fn)):
        return fn[grab + 1:]
    return fn


def determine_output(permalink, published, rel_path, type_rule, article_spec, is_plain_file=False):
    """
    Compute an article's URL and output file name.

    A pure function of its arguments.

    Args:
        permalink: Pattern using :year :month :day :fn :path
        published: ArticleDate
        rel_path: Source path relative to the site root, with leading '/'
        type_rule: The article type's config (for fn_grab_len)
        article_spec: The article_spec config section
        is_plain_file: Verbatim passthrough; no extension or trailing separator

    Returns:
        (url, output_file_name, base_fn)
    """
    dirname = os.path.dirname(rel_path)
    fn = os.path.splitext(os.path.basename(rel_path))[0]
    fn = strip_date_prefix(fn, type_rule)

    reps = {
        'year': published.year,
        'month': published.month,
        'day': published.day,
        'fn': fn,
        'path': dirname,
    }
    ofn = TOKEN_RE.sub(lambda m: str(reps[m.group(1)]), permalink)
    ofn = '/' + re.sub(r'/{2,}', '/', ofn).strip('/')
    if ofn == '/' and not is_plain_file:
        ofn = '/' + article_spec.get('index_fn', 'index')

    url = ofn
    if not is_plain_file:
        index_fn = article_spec.get('index_fn', 'index')
        output_ext = article_spec.get('output_ext', '.html')
        if os.path.basename(ofn) == index_fn:
            url = os.path.dirname(ofn)
            ofn = ofn + output_ext
        elif article_spec.get('output_mode', 'directory') == 'directory':
            ofn = ofn + '/' + index_fn + output_ext
        else:
            ofn = ofn + output_ext

        terminate = article_spec.get('terminate_url', '/')
        if terminate and not url.endswith(terminate):
            url = url + terminate

    return url, ofn, fn


class ArticlePipeline:
    """Parses source files into fully-derived, indexed articles."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.builder = ArticleBuilder(ctx)
        self.logger = logging.getLogger('Folio.ArticlePipeline')

    @property
    def spec(self):
        return self.ctx.settings.get('article_spec', {})

    def type_rule(self, type_name):
        return (self.spec.get('types') or {}).get(type_name, {})

    async def parse(self, file_path, data=None, body=None, is_dummy=False):
        """
        Build, derive, index and queue one article.

        Raises:
            ArticleError: the article cannot be processed
        """
        article = self.builder.build(file_path, data=data, body=body, is_dummy=is_dummy)

        await self.ctx.emit_for_article(Event.AFTER_ARTICLE_PARSER_INIT, article)

        self.run(article)

        await self.ctx.emit_for_article(Event.AFTER_ARTICLE_PARSER_RUN, article)

        self.process_schema(article)

        if article.data.get('render', True):
            self.ctx.queue_for_render(article)
        return article

    def run(self, article):
        """Run derivation steps 1 to 16 in order."""
        self.resolve_dates(article)
        self.determine_output(article)
        self.process_references(article)
        self.process_imports(article)
        self.process_authors(article)
        self.process_names(article)
        self.process_summary(article)
        self.process_description(article)
        self.process_taxonomies(article)
        self.process_citations(article)
        self.process_breadcrumbs(article)
        self.process_faq(article)
        self.process_howto(article)
        self.process_effort(article)
        self.process_pagination(article)
        self.process_published(article)
        self.save_article(article)
        return article

    # ------------------------------------------------------------------
    # Step 1: dates
    # ------------------------------------------------------------------

    def published_modified(self, file_path, type_name, user_pub=None, user_mod=None):
        """
        Resolve published and modified dates.

        Published: explicit value, else a date prefix in the file name (when
        the type declares one), else the file's birth time. Modified: explicit
        value, else the file's modification time.
        """
        date_fmt = self.spec.get('disp_date', DEFAULT_DATE_FORMAT)
        time_fmt = self.spec.get('disp_time', DEFAULT_TIME_FORMAT)
        rule = self.type_rule(type_name)
        basename = os.path.basename(file_path)

        if user_pub:
            published = ArticleDate(user_pub, date_fmt, time_fmt, source='front_matter')
        else:
            published = None
            fn_start = rule.get('fn_start')
            if fn_start and re.search(fn_start, basename):
                grab = rule.get('fn_grab_len', 10)
                try:
                    published = ArticleDate(basename[:grab], date_fmt, time_fmt, source='filename')
                except ValueError:
                    self.logger.warning(f"File name date prefix is not a valid date: {basename}")
            if published is None:
                published = ArticleDate(file_birth_time(file_path), date_fmt, time_fmt, source='filesystem')

        if user_mod:
            modified = ArticleDate(user_mod, date_fmt, time_fmt, source='front_matter')
        else:
            modified = ArticleDate(file_modified_time(file_path), date_fmt, time_fmt, source='filesystem')

        return published, modified

    def resolve_dates(self, article):
        try:
            article.published_date, article.modified_date = self.published_modified(
                article.file_path, article.type, article.data.get('date'), article.data.get('mdate'))
        except ValueError as e:
            raise ArticleError(f"Bad date: {e}", article.rel_path)

    # ------------------------------------------------------------------
    # Step 2: output location
    # ------------------------------------------------------------------

    def get_permalink(self, explicit, type_name, rel_path):
        type_defaults = self.type_rule(type_name).get('default_config') or {}
        permalink = explicit or type_defaults.get('permalink') or self.spec.get('default_permalink')
        if not permalink:
            raise ArticleError("No permalink pattern could be resolved", rel_path)
        return permalink

    def determine_output(self, article):
        article.permalink = self.get_permalink(article.data.get('permalink'), article.type, article.rel_path)
        article.url, article.output_file_name, article.base_fn = determine_output(
            article.permalink, article.published_date, article.rel_path,
            self.type_rule(article.type), self.spec, article.is_plain_file)
        self.logger.debug(f"Output for {article.rel_path}: {article.output_file_name} => {article.url}")

    # ------------------------------------------------------------------
    # Steps 3 and 4: references and imports
    # ------------------------------------------------------------------

    @staticmethod
    def _keyed(value):
        if not value:
            return {}
        if isinstance(value, dict):
            return dict(value)
        return {pos: item for pos, item in enumerate(make_list(value), start=1)}

    def _load_reference(self, full):
        with open(full, 'r', encoding='utf-8') as f:
            text = f.read()
        data, body = parse_front_matter(text)
        if not data:
            data = yaml.safe_load(body) or {}
        return data

    def process_references(self, article):
        """
        Merge products, reviews and images from referenced YAML files.

        ``references`` maps an index to a file (relative to the site root);
        the product and review under the same index in that file are merged
        beneath the article's own.
        """
        article.products = self._keyed(article.data.get('products'))
        article.reviews = self._keyed(article.data.get('reviews'))
        article.images = self._keyed(article.data.get('images'))

        refs = self._keyed(article.data.get('references'))
        for index, ref_file in refs.items():
            full = os.path.join(self.ctx.site_dir, str(ref_file).lstrip('/'))
            if not os.path.isfile(full):
                self.logger.error(f"Reference file '{ref_file}' does not exist: {article.rel_path}")
                continue
            try:
                ref = self._load_reference(full)
            except (yaml.YAMLError, ArticleError, OSError) as e:
                self.logger.error(f"Failed to load reference '{ref_file}': {e} ({article.rel_path})")
                continue

            products = self._keyed(ref.get('products'))
            if index in products:
                product = dict(products[index])
                if not product.get('review_url'):
                    product['review_url'] = self._reference_url(full, ref)
                article.products[index] = deep_merge(product, article.products.get(index, {}))

            reviews = self._keyed(ref.get('reviews'))
            if index in reviews:
                article.reviews[index] = deep_merge(reviews[index], article.reviews.get(index, {}))

            for img_index, img in self._keyed(ref.get('images')).items():
                article.images.setdefault(img_index, img)

    def _reference_url(self, full, ref):
        """URL the referenced article will be published at."""
        type_name = ref.get('type') or 'post'
        rel_path = '/' + os.path.relpath(full, self.ctx.site_dir).replace(os.sep, '/')
        try:
            permalink = self.get_permalink(ref.get('permalink'), type_name, rel_path)
            published, _ = self.published_modified(full, type_name, ref.get('date'), ref.get('mdate'))
        except (ArticleError, ValueError) as e:
            self.logger.warning(f"Cannot compute review URL for {rel_path}: {e}")
            return None
        url, _, _ = determine_output(permalink, published, rel_path, self.type_rule(type_name),
                                     self.spec, bool(ref.get('is_plain_file')))
        return url

    def process_imports(self, article):
        """Pull products and reviews declared globally under ``site.products``/``site.reviews``."""
        imports = article.data.get('imports')
        if not imports:
            return
        if not isinstance(imports, dict):
            imports = {'products': imports, 'reviews': imports}

        for kind in ('products', 'reviews'):
            pool = self.ctx.settings.get(f'site.{kind}') or {}
            target = getattr(article, kind)
            for key in make_list(imports.get(kind)):
                if key in target:
                    self.logger.error(f"Duplicate {kind} import '{key}': {article.rel_path}")
                    continue
                if key not in pool:
                    self.logger.error(f"No global {kind} entry '{key}' to import: {article.rel_path}")
                    continue
                target[key] = dict(pool[key])

    # ------------------------------------------------------------------
    # Steps 5 and 6: authors and names
    # ------------------------------------------------------------------

    def process_authors(self, article):
        site_authors = self.ctx.settings.get('site.authors') or {}
        keys = make_list(article.data.get('authors') or article.data.get('author'))
        if not keys and site_authors:
            keys = [next(iter(site_authors))]

        authors = []
        for key in keys:
            if isinstance(key, dict):
                authors.append(dict(key))
            elif key in site_authors:
                record = dict(site_authors[key]) if isinstance(site_authors[key], dict) else {'name': site_authors[key]}
                record.setdefault('key', key)
                authors.append(record)
            else:
                authors.append({'name': str(key)})
        article.authors = authors

    def process_names(self, article):
        name = article.data.get('name')
        headline = article.data.get('headline')
        if not name:
            name = headline or humanize(article.base_fn or article.fn)
        if not headline:
            headline = name
        article.name = str(name)
        article.headline = str(headline)

    # ------------------------------------------------------------------
    # Steps 7 and 8: summary, abstract, description
    # ------------------------------------------------------------------

    def process_summary(self, article):
        abstract = article.abstract
        if abstract is None or not abstract.text:
            text = article.content.text if article.content else ''
            length = self.spec.get('abstract_extract_len', 200)
            article.formats['abstract'] = MultiFormat.from_html(html.escape(truncate(text, length), quote=False))
            article.abstract_synthesized = True
        else:
            article.abstract_synthesized = False

    def process_description(self, article):
        description = article.data.get('description')
        if not description and self.ctx.settings.get('site.clever_descriptions'):
            summary = article.summary
            if summary is not None and summary.text and not summary.is_list:
                description = truncate(summary.text, self.spec.get('description_extract_len', 160))
            elif len(article.products) == 1:
                key = next(iter(article.products))
                review = article.reviews.get(key)
                if review and review.get('description'):
                    description = review['description']
        if not description and not article.is_dummy:
            self.logger.info(f"Article has no description: {article.rel_path}")
        article.description = description or ''

    # ------------------------------------------------------------------
    # Step 9: taxonomy pre-processing
    # ------------------------------------------------------------------

    def process_taxonomies(self, article):
        """
        Split configured tags out into sections and article types.

        Tags listed in ``tags_are_sections`` move to the 'sections' taxonomy,
        those in ``tags_are_types`` to 'types'; the rest stay as tags. When
        sections are configured but none matched, ``default_section`` is used.
        """
        as_sections = self.spec.get('tags_are_sections') or []
        as_types = self.spec.get('tags_are_types') or []
        if not as_sections and not as_types:
            return

        tags = article.taxonomies.get('tags', [])
        sections = list(article.taxonomies.get('sections', []))
        types = list(article.taxonomies.get('types', []))
        remaining = []
        for tag in tags:
            if tag in as_sections:
                if tag not in sections:
                    sections.append(tag)
            elif tag in as_types:
                if tag not in types:
                    types.append(tag)
            else:
                remaining.append(tag)

        if as_sections and not sections and self.spec.get('default_section'):
            sections = [self.spec['default_section']]

        article.taxonomies['tags'] = remaining
        if sections:
            article.taxonomies['sections'] = sections
        if types:
            article.taxonomies['types'] = types
        if not remaining:
            del article.taxonomies['tags']

    # ------------------------------------------------------------------
    # Steps 10 to 12: citations, breadcrumbs, FAQ
    # ------------------------------------------------------------------

    def process_citations(self, article):
        raw = article.data.get('citation') or article.data.get('citations')
        article.citations = process_citations(raw, article.rel_path, self.ctx.link, self.ctx.x)

    def process_breadcrumbs(self, article):
        spec = article.data.get('breadcrumbs') or self.spec.get('default_breadcrumbs')
        if not spec:
            self.logger.error(f"No breadcrumbs found for article: {article.rel_path}")
            article.breadcrumbs = []
            article.bc_str = ''
            return
        article.breadcrumbs = build_breadcrumbs(spec, article, self.ctx.settings.get('taxonomy_spec', {}))
        article.bc_str = breadcrumb_string(article.breadcrumbs, self.ctx.link)

    def process_faq(self, article):
        """Normalise FAQ data to ``{'name': ..., 'faqs': [{'q', 'a'}]}``."""
        raw = article.data.get('faq')
        if not raw:
            return
        if isinstance(raw, dict):
            name = raw.get('name')
            items = raw.get('faqs') or []
        else:
            name = None
            items = raw

        faqs = []
        for item in make_list(items):
            if not isinstance(item, dict) or not item.get('q'):
                self.logger.error(f"FAQ entries need a 'q' field: {article.rel_path}")
                continue
            faqs.append({'q': str(item['q']), 'a': MultiFormat(str(item.get('a', '')))})

        article.faq = {'name': name, 'faqs': faqs}

    def process_howto(self, article):
        raw = article.data.get('howto')
        if not raw:
            return
        if not isinstance(raw, dict):
            self.logger.error(f"'howto' must be a mapping: {article.rel_path}")
            return
        howto = dict(raw)
        howto.setdefault('name', article.name)
        howto.setdefault('description', article.description)
        howto.setdefault('supply', 'n/a')
        howto.setdefault('tool', 'n/a')
        steps = []
        for step in make_list(howto.get('steps')):
            if not isinstance(step, dict) or not step.get('name'):
                self.logger.error(f"HowTo steps need a 'name': {article.rel_path}")
                continue
            steps.append(step)
        howto['steps'] = steps
        article.howto = howto

    # ------------------------------------------------------------------
    # Steps 13 to 15: effort, pagination, published
    # ------------------------------------------------------------------

    def process_effort(self, article):
        words = 0
        if article.content is not None:
            words += article.content.words
        if article.summary is not None:
            words += article.summary.words
        if article.faq:
            words += sum(item['a'].words for item in article.faq['faqs'])

        wpm = self.spec.get('wpm') or 250
        article.words = words
        if words > 0:
            article.reading_time = words / wpm
            article.reading_time_rounded = round(article.reading_time)
        else:
            article.reading_time = 0
            article.reading_time_rounded = 0

    def process_pagination(self, article):
        params = article.data.get('paginate')
        if not params:
            return
        if not isinstance(params, dict) or not params.get('data'):
            self.logger.error(f"Pagination needs a 'data' collection name: {article.rel_path}")
            return
        article.paginate = dict(params)
        self.ctx.paginate[article.url] = article

    def process_published(self, article):
        explicit = article.data.get('published')
        if explicit is not None:
            article.published = bool(explicit)
            return
        article.published = int(time.time() * 1000) >= article.published_date.ms

    # ------------------------------------------------------------------
    # Step 16: indexing
    # ------------------------------------------------------------------

    def save_article(self, article):
        self.ctx.index.add(article)
        if article.is_dummy:
            return
        counts = self.ctx.counts
        counts['articles'] += 1
        counts['words'] += article.words
        if article.type == 'post':
            counts['posts'] += 1
        elif article.type == 'page':
            counts['pages'] += 1

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def process_schema(self, article):
        article.schema = build_schema(self.ctx, article)
        article.schema_json = schema_to_json(article.schema)

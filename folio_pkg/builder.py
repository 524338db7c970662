"""
Turns a raw source file into an Article: front matter, type, layout and
multi-format content.
"""

import logging
import os
import re

from .article import Article
from .content import MultiFormat
from .errors import ArticleError, TemplateNotFoundError
from .frontmatter import parse_front_matter, parse_layout_front_matter
from .utils import merge_all


class ArticleBuilder:
    # Keys where the highest-precedence layer replaces lower ones outright
    # rather than having its list unioned with theirs.
    REPLACE_KEYS = ('breadcrumbs', 'permalink', 'layout')

    def __init__(self, ctx):
        self.ctx = ctx
        self.logger = logging.getLogger('Folio.ArticleBuilder')
        self._layout_cache = {}

    @property
    def spec(self):
        return self.ctx.settings.get('article_spec', {})

    def build(self, file_path, data=None, body=None, is_dummy=False):
        """
        Build an article from a file.

        Args:
            file_path: Absolute path of the source file
            data: Front matter to use instead of reading the file (synthetic pages)
            body: Body to use with ``data``
            is_dummy: Mark the article as synthetic

        Returns:
            Article
        """
        rel_path = '/' + os.path.relpath(file_path, self.ctx.site_dir).replace(os.sep, '/')

        if data is None:
            data, body = self.extract_front_matter(file_path, rel_path)
        data = dict(data)
        if 'content' not in data:
            data['content'] = body or ''

        data = self.rename_legacy_fields(data)
        data['type'] = self.infer_type(data.get('type'), rel_path)
        data = self.apply_layout(data, rel_path)

        article = Article(file_path, self.ctx.site_dir, data, body or '', is_dummy=is_dummy)
        self._populate(article, data)
        return article

    def extract_front_matter(self, file_path, rel_path):
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                text = f.read()
        except (IOError, OSError, UnicodeDecodeError) as e:
            raise ArticleError(f"Unable to read file: {e}", rel_path)
        return parse_front_matter(text, rel_path=rel_path)

    def rename_legacy_fields(self, data):
        """``title`` becomes ``name`` and ``keywords`` becomes ``tags``."""
        if data.get('title') and not data.get('name'):
            data['name'] = data.pop('title')
        if 'keywords' in data:
            keywords = data.pop('keywords')
            if isinstance(keywords, str):
                keywords = [k.strip() for k in keywords.split(',') if k.strip()]
            tags = list(data.get('tags') or [])
            for keyword in keywords or []:
                if keyword not in tags:
                    tags.append(keyword)
            data['tags'] = tags
        return data

    def infer_type(self, declared, rel_path):
        """
        Work out an article's type.

        Each configured type may test the file name against ``fn_start`` and
        the path against ``dirs``; ``combine_test`` says whether both ('and')
        or either ('or') must pass. The first type that passes wins, in
        declaration order.
        """
        types = self.spec.get('types') or {}
        if declared:
            if declared not in types:
                raise ArticleError(f"Unknown article type '{declared}'", rel_path)
            return declared

        basename = os.path.basename(rel_path)
        for name, rule in types.items():
            fn_start = rule.get('fn_start')
            dirs = rule.get('dirs')
            if not fn_start and not dirs:
                continue
            name_ok = bool(fn_start and re.search(fn_start, basename))
            dir_ok = any(rel_path.startswith(d.rstrip('/') + '/') for d in (dirs or []))
            combine = rule.get('combine_test', 'and')
            if combine == 'and' and name_ok and dir_ok:
                return name
            if combine == 'or' and (name_ok or dir_ok):
                return name

        default = self.spec.get('default_type')
        if default and default in types:
            return default
        raise ArticleError("Cannot determine article type.", rel_path)

    def locate_layout(self, layout):
        for layout_dir in self.ctx.layout_dirs:
            candidate = os.path.join(layout_dir, layout)
            if os.path.isfile(candidate):
                return candidate
        return None

    def load_layout_data(self, layout_path, rel_path):
        if layout_path not in self._layout_cache:
            with open(layout_path, 'r', encoding='utf-8') as f:
                data, _ = parse_layout_front_matter(f.read(), rel_path)
            self._layout_cache[layout_path] = data
        return self._layout_cache[layout_path]

    def apply_layout(self, data, rel_path):
        """
        Resolve the layout and merge defaults beneath the file's own data.

        Precedence, lowest first: type default config, layout front matter,
        the file's front matter.
        """
        type_cfg = (self.spec.get('types') or {}).get(data['type'], {})
        type_defaults = type_cfg.get('default_config') or {}

        layout = data.get('layout') or type_defaults.get('layout') or data['type']
        if not os.path.splitext(layout)[1]:
            layout += '.' + self.ctx.settings.get('template_spec.default_type', 'html')

        layout_path = self.locate_layout(layout)
        if layout_path is None:
            raise TemplateNotFoundError(f"Unable to locate layout '{layout}'", rel_path)

        layout_data = self.load_layout_data(layout_path, rel_path)
        merged = merge_all(type_defaults, layout_data, data)
        for key in self.REPLACE_KEYS:
            for layer in (data, layout_data, type_defaults):
                if key in layer:
                    merged[key] = layer[key]
                    break

        merged['layout'] = layout
        merged['_layout_path'] = layout_path
        return merged

    def _populate(self, article, data):
        article.type = data['type']
        article.layout = data['layout']
        article.layout_path = data.pop('_layout_path')
        article.layout_type = os.path.splitext(article.layout)[1].lstrip('.') or 'html'
        article.is_plain_file = bool(data.get('is_plain_file'))

        is_html_source = os.path.splitext(article.file_path)[1].lower() in ('.html', '.htm')
        for key in self.spec.get('multi_format', []):
            if key not in data or data[key] is None:
                continue
            if key == 'content' and is_html_source:
                article.formats[key] = MultiFormat.from_html(data[key])
            else:
                article.formats[key] = MultiFormat(data[key])

        for type_name, tax_spec in (self.ctx.settings.get('taxonomy_spec') or {}).items():
            field = tax_spec.get('field', type_name)
            values = data.get(field)
            if values:
                if isinstance(values, str):
                    values = [values]
                article.taxonomies[type_name] = [str(v) for v in values]

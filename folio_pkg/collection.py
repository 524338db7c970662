"""
Article collections and taxonomy indices.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from .errors import ArticleError, TaxonomyError
from .utils import slugify

logger = logging.getLogger('Folio.Collection')


def published_ms(article) -> int:
    return article.published_date.ms if article.published_date else 0


class Collection:
    """
    Insertion-ordered key to value mapping that can be re-sorted.

    Sorting rebuilds the mapping from its own items, so entries are never
    dropped or duplicated.
    """

    def __init__(self, name: str = None):
        self.name = name
        self.items: Dict[Any, Any] = {}

    def set(self, key, value) -> None:
        self.items[key] = value

    def get(self, key, default=None):
        return self.items.get(key, default)

    def has(self, key) -> bool:
        return key in self.items

    def remove(self, key) -> None:
        self.items.pop(key, None)

    def keys(self) -> List[Any]:
        return list(self.items.keys())

    def values(self) -> List[Any]:
        return list(self.items.values())

    def sort(self, key: Callable, reverse: bool = True) -> 'Collection':
        """Re-order entries by ``key(value)``, descending by default."""
        self.items = dict(sorted(self.items.items(), key=lambda kv: key(kv[1]), reverse=reverse))
        return self

    def sort_desc(self, key: Callable) -> 'Collection':
        return self.sort(key, reverse=True)

    def sort_asc(self, key: Callable) -> 'Collection':
        return self.sort(key, reverse=False)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values())

    def __contains__(self, key) -> bool:
        return key in self.items


class ArticleCollection(Collection):
    """Articles keyed by URL, sortable by publish date."""

    def sort_by_date(self, reverse: bool = True) -> 'ArticleCollection':
        self.sort(published_ms, reverse=reverse)
        return self

    def published(self) -> List[Any]:
        return [a for a in self.values() if a.published]


class Taxonomy:
    """One value of a taxonomy type, e.g. the tag 'python'."""

    def __init__(self, name: str, type_name: str, path: str = None):
        self.name = name
        self.type = type_name
        self.path = path or '/' + type_name
        self.count = 0
        self.articles: List[Any] = []

    def add_article(self, article) -> 'Taxonomy':
        """Append an article. Not idempotent: adding twice counts twice."""
        self.articles.append(article)
        self.count += 1
        return self

    def sort_articles_by_date(self) -> None:
        self.articles.sort(key=published_ms, reverse=True)

    @property
    def slug(self) -> str:
        return slugify(self.name)

    @property
    def url(self) -> str:
        return '/'.join([self.path.rstrip('/'), self.slug, ''])

    def get_link(self) -> str:
        return f'<a href="{self.url}">{self.name}</a>'

    def __repr__(self):
        return f"Taxonomy({self.type}:{self.name}, count={self.count})"


class TaxonomyType:
    """All values of one taxonomy type, e.g. every tag."""

    def __init__(self, name: str, path: str = None, name_str=None):
        self.name = name
        self.path = path or '/' + name
        self.name_str = list(name_str or [name.capitalize(), name.capitalize()])
        self.items: Dict[str, Taxonomy] = {}

    def add_taxonomy(self, name: str) -> Taxonomy:
        taxonomy = Taxonomy(name, self.name, self.path)
        self.items[name] = taxonomy
        return taxonomy

    def has_taxonomy(self, name: str) -> bool:
        return name in self.items

    def get_taxonomy(self, name: str) -> Taxonomy:
        if name in self.items:
            return self.items[name]
        raise TaxonomyError(f"No taxonomy {name} found for type {self.name}.")

    def sort_by_count(self) -> 'TaxonomyType':
        # Stable sort: equal counts keep their insertion order.
        self.items = dict(sorted(self.items.items(), key=lambda kv: kv[1].count, reverse=True))
        return self

    def sort_taxonomies(self) -> None:
        for taxonomy in self.items.values():
            taxonomy.sort_articles_by_date()

    def __iter__(self):
        return iter(self.items.values())

    def __len__(self):
        return len(self.items)


class ArticleIndex:
    """
    The global indices: every article by URL, articles by type and articles
    by taxonomy value.
    """

    def __init__(self, taxonomy_spec: Optional[Dict[str, Dict[str, Any]]] = None, collision_policy: str = 'warn'):
        self.all = ArticleCollection('all')
        self.by_type: Dict[str, ArticleCollection] = {}
        self.taxonomies: Dict[str, TaxonomyType] = {}
        self.taxonomy_spec = taxonomy_spec or {}
        self.collision_policy = collision_policy
        self.sorted = False

    def get_taxonomy_type(self, name: str) -> TaxonomyType:
        if name not in self.taxonomies:
            spec = self.taxonomy_spec.get(name, {})
            self.taxonomies[name] = TaxonomyType(name, spec.get('path'), spec.get('name_str'))
        return self.taxonomies[name]

    def has_taxonomy_type(self, name: str) -> bool:
        return name in self.taxonomies

    def get_taxonomy(self, type_name: str, name: str) -> Taxonomy:
        if type_name not in self.taxonomies:
            raise TaxonomyError(f"No taxonomy type {type_name} found.")
        return self.taxonomies[type_name].get_taxonomy(name)

    def type_collection(self, type_name: str) -> ArticleCollection:
        if type_name not in self.by_type:
            self.by_type[type_name] = ArticleCollection(type_name)
        return self.by_type[type_name]

    def add(self, article) -> None:
        """
        Index an article by URL, by type and by every taxonomy value it carries.

        A URL already taken by another article is a collision. Under the
        'warn' policy the later article replaces the earlier one, under
        'fail' an ArticleError is raised and nothing is indexed.
        """
        existing = self.all.get(article.url)
        if existing is not None and existing is not article:
            msg = (f"URL collision on {article.url}: {article.rel_path} "
                   f"clashes with {existing.rel_path}")
            if self.collision_policy == 'fail':
                raise ArticleError(msg, article.rel_path)
            logger.warning(msg + ", overwriting")
            self._unindex(existing)

        self.all.set(article.url, article)
        self.type_collection(article.type).set(article.url, article)

        for type_name, values in article.taxonomies.items():
            tax_type = self.get_taxonomy_type(type_name)
            for value in values:
                if not tax_type.has_taxonomy(value):
                    tax_type.add_taxonomy(value)
                tax_type.get_taxonomy(value).add_article(article)

    def _unindex(self, article) -> None:
        coll = self.by_type.get(article.type)
        if coll is not None and coll.get(article.url) is article:
            coll.remove(article.url)
        for type_name, values in article.taxonomies.items():
            tax_type = self.taxonomies.get(type_name)
            if tax_type is None:
                continue
            for value in values:
                taxonomy = tax_type.items.get(value)
                if taxonomy is not None and article in taxonomy.articles:
                    taxonomy.articles.remove(article)
                    taxonomy.count -= 1

    def sort_all(self) -> None:
        """
        Sort every collection and taxonomy.

        Call only once every article has been indexed; a partial index would
        be left in a stale order.
        """
        self.all.sort_by_date()
        for coll in self.by_type.values():
            coll.sort_by_date()
        for tax_type in self.taxonomies.values():
            tax_type.sort_by_count()
            tax_type.sort_taxonomies()
        self.sorted = True

    def resolve_collection(self, spec: str) -> List[Any]:
        """
        Look up a list of articles by name: ``all``, ``type.<name>`` or
        ``taxonomy.<type>.<value>``.
        """
        if spec == 'all':
            return self.all.values()
        parts = spec.split('.', 2)
        if parts[0] == 'type' and len(parts) == 2:
            return self.type_collection(parts[1]).values()
        if parts[0] == 'taxonomy' and len(parts) == 3:
            return list(self.get_taxonomy(parts[1], parts[2]).articles)
        raise TaxonomyError(f"Unknown collection '{spec}'")

"""Tests for article collections and taxonomy indices."""

import pytest

from folio_pkg.collection import ArticleIndex, Collection, Taxonomy, TaxonomyType
from folio_pkg.dates import ArticleDate
from folio_pkg.errors import ArticleError, TaxonomyError


class FakeArticle:
    def __init__(self, url, date='2023-01-01', type_name='post', tags=None, rel_path=None):
        self.url = url
        self.type = type_name
        self.published_date = ArticleDate(date)
        self.taxonomies = {'tags': tags} if tags else {}
        self.rel_path = rel_path or url + '.md'
        self.is_dummy = False
        self.published = True

    def __repr__(self):
        return f"FakeArticle({self.url})"


class TestCollection:
    """Test cases for Collection."""

    def test_sort_keeps_every_entry(self):
        coll = Collection()
        for key, value in (('a', 3), ('b', 1), ('c', 2)):
            coll.set(key, value)
        coll.sort_asc(lambda v: v)
        assert coll.keys() == ['b', 'c', 'a']
        coll.sort_desc(lambda v: v)
        assert coll.values() == [3, 2, 1]
        assert len(coll) == 3

    def test_remove_and_contains(self):
        coll = Collection()
        coll.set('a', 1)
        assert 'a' in coll
        coll.remove('a')
        coll.remove('missing')
        assert not coll.has('a')


class TestTaxonomy:
    """Test cases for Taxonomy and TaxonomyType."""

    def test_url_and_link(self):
        taxonomy = Taxonomy('Machine Learning', 'tags', '/tags')
        assert taxonomy.slug == 'machine-learning'
        assert taxonomy.url == '/tags/machine-learning/'
        assert taxonomy.get_link() == '<a href="/tags/machine-learning/">Machine Learning</a>'

    def test_sort_by_count_is_stable(self):
        tax_type = TaxonomyType('tags')
        for name, count in (('a', 1), ('b', 2), ('c', 1), ('d', 2)):
            taxonomy = tax_type.add_taxonomy(name)
            taxonomy.count = count
        tax_type.sort_by_count()
        assert list(tax_type.items) == ['b', 'd', 'a', 'c']

    def test_missing_taxonomy(self):
        with pytest.raises(TaxonomyError):
            TaxonomyType('tags').get_taxonomy('nope')


class TestArticleIndex:
    """Test cases for ArticleIndex."""

    def test_add_indexes_by_url_type_and_taxonomy(self):
        index = ArticleIndex({'tags': {'path': '/topics'}})
        article = FakeArticle('/a/', tags=['python'])
        index.add(article)

        assert index.all.get('/a/') is article
        assert index.type_collection('post').get('/a/') is article
        taxonomy = index.get_taxonomy('tags', 'python')
        assert taxonomy.count == 1
        assert taxonomy.url == '/topics/python/'

    def test_sort_all_orders_newest_first(self):
        index = ArticleIndex()
        old = FakeArticle('/old/', date='2020-01-01', tags=['x'])
        new = FakeArticle('/new/', date='2023-01-01', tags=['x'])
        index.add(old)
        index.add(new)
        index.sort_all()
        assert index.all.values() == [new, old]
        assert index.get_taxonomy('tags', 'x').articles == [new, old]
        assert index.sorted

    def test_collision_warn_replaces(self, caplog):
        index = ArticleIndex()
        first = FakeArticle('/same/', tags=['x'], rel_path='/first.md')
        second = FakeArticle('/same/', rel_path='/second.md')
        index.add(first)
        index.add(second)

        assert index.all.get('/same/') is second
        assert len(index.all) == 1
        assert index.get_taxonomy('tags', 'x').count == 0
        assert "URL collision on /same/" in caplog.text

    def test_collision_fail_raises(self):
        index = ArticleIndex(collision_policy='fail')
        index.add(FakeArticle('/same/', rel_path='/first.md'))
        with pytest.raises(ArticleError, match="URL collision"):
            index.add(FakeArticle('/same/', rel_path='/second.md'))

    def test_readding_same_article_is_not_a_collision(self):
        index = ArticleIndex(collision_policy='fail')
        article = FakeArticle('/same/')
        index.add(article)
        index.add(article)
        assert len(index.all) == 1

    def test_resolve_collection(self):
        index = ArticleIndex()
        post = FakeArticle('/p/', tags=['x.y'])
        page = FakeArticle('/q/', type_name='page')
        index.add(post)
        index.add(page)

        assert index.resolve_collection('all') == [post, page]
        assert index.resolve_collection('type.page') == [page]
        assert index.resolve_collection('type.none') == []
        assert index.resolve_collection('taxonomy.tags.x.y') == [post]

    def test_resolve_collection_errors(self):
        index = ArticleIndex()
        with pytest.raises(TaxonomyError):
            index.resolve_collection('taxonomy.tags.missing')
        with pytest.raises(TaxonomyError, match="Unknown collection"):
            index.resolve_collection('bogus')

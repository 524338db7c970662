"""Tests for the plugin host and the system plugins."""

from pathlib import Path

import pytest

from folio_pkg.collection import Taxonomy
from folio_pkg.dates import ArticleDate
from folio_pkg.errors import ConfigError
from folio_pkg.events import Event
from folio_pkg.frontmatter import parse_front_matter
from folio_pkg.plugins import SYSTEM_PLUGINS, load_plugins
from folio_pkg.plugins.pre_links import expand_links, unescape
from folio_pkg.plugins.prev_next import link_neighbours
from folio_pkg.plugins.product_reviews import ProductReviewProcessor, rating_label, rating_stars
from folio_pkg.plugins.related_posts import find_related
from folio_pkg.plugins.taxonomy_pages import fill_taxonomy_dummy

from conftest import make_image, run, write_file


def link(text, url, title=None):
    if title:
        return f'<a href="{url}" title="{title}">{text}</a>'
    return f'<a href="{url}">{text}</a>'


class FakePost:
    def __init__(self, url, tags, date='2023-01-01'):
        self.url = url
        self.name = url.strip('/').title()
        self.description = ''
        self.tags = tags
        self.published_date = ArticleDate(date)


class TestPluginLoading:
    """Test cases for the plugin host."""

    def test_system_plugins_load(self, ctx):
        assert load_plugins(ctx) == SYSTEM_PLUGINS
        assert ctx.images is not None
        assert ctx.get_parser('jpg') is not None
        assert 'png' in ctx.early_parse
        assert ctx.settings.get('related_posts_spec.max_related_posts') == 4

    def test_unknown_system_plugin(self, ctx):
        ctx.settings['site']['sys_plugins'] = ['nope']
        with pytest.raises(ConfigError, match="Unknown system plugin"):
            load_plugins(ctx)

    def test_user_plugin(self, ctx, site_dir):
        write_file(Path(site_dir, '_plugins', 'shout.py'), """
from folio_pkg.events import Event
from folio_pkg.frontmatter import parse_front_matter


def init(ctx):
    ctx.on(Event.ARTICLE_PRERENDER, lambda article: article.extensions.setdefault('shout', True))
""")
        ctx.settings['site']['sys_plugins'] = []
        ctx.settings['site']['plugins'] = ['shout']
        assert load_plugins(ctx) == ['shout']
        assert len(ctx.bus.handlers(Event.ARTICLE_PRERENDER)) == 1

    def test_user_plugin_without_init(self, ctx, site_dir):
        write_file(Path(site_dir, '_plugins', 'empty.py'), "VALUE = 1\n")
        ctx.settings['site']['sys_plugins'] = []
        ctx.settings['site']['plugins'] = ['empty']
        with pytest.raises(ConfigError, match="no init"):
            load_plugins(ctx)

    def test_missing_user_plugin(self, ctx):
        ctx.settings['site']['sys_plugins'] = []
        ctx.settings['site']['plugins'] = ['ghost']
        with pytest.raises(ConfigError, match="not found"):
            load_plugins(ctx)

    def test_sys_plugins_can_be_narrowed(self, ctx):
        ctx.settings.merge({'site': {'sys_plugins': ['images', 'pre_links']}})
        assert load_plugins(ctx) == ['images', 'pre_links']
        assert ctx.bus.handlers(Event.AFTER_PARSE_LATE) == []

    def test_user_defaults_survive_plugin_defaults(self, ctx):
        ctx.settings.merge_section('related_posts_spec', {'max_related_posts': 2})
        load_plugins(ctx)
        assert ctx.settings.get('related_posts_spec.max_related_posts') == 2
        assert ctx.settings.get('related_posts_spec.default_matches_min') == 2


class TestPreLinks:
    """Test cases for link shorthand expansion."""

    def test_expand_links(self):
        out = expand_links('See (((the docs|/docs/))) and (((this|/x/|A title))).', link)
        assert out == 'See <a href="/docs/">the docs</a> and <a href="/x/" title="A title">this</a>.'

    def test_image_tags_are_left_alone(self):
        markup = '(((image-hero|alt=x)))'
        assert expand_links(markup, link) == markup

    def test_qualified_for_feeds(self):
        out = expand_links('(((docs|/docs/)))', link, qualify=lambda u: 'https://example.com' + u)
        assert out == '<a href="https://example.com/docs/">docs</a>'

    def test_unescape(self):
        assert unescape('%(%(%(literal%)%)%)') == '(((literal)))'

    def test_prerender_replaces_content(self, ctx, pipeline, site_dir):
        load_plugins(ctx)
        path = write_file(Path(site_dir, 'links.md'), "Read (((the about page|/about/))).")
        article = run(pipeline.parse(path))
        run(ctx.emit_for_article(Event.ARTICLE_PRERENDER, article))
        assert article.content.html == '<p>Read <a href="/about/">the about page</a>.</p>'


class TestPrevNext:
    """Test cases for chronological neighbours."""

    def test_link_neighbours(self):
        newest, middle, oldest = FakePost('/c/', []), FakePost('/b/', []), FakePost('/a/', [])
        for post in (newest, middle, oldest):
            post.extensions = {}
        link_neighbours([newest, middle, oldest])

        assert newest.extensions['prev_next'] == {'next': None, 'prev': {'name': 'B', 'url': '/b/'}}
        assert middle.extensions['prev_next']['next']['url'] == '/c/'
        assert middle.extensions['prev_next']['prev']['url'] == '/a/'
        assert oldest.extensions['prev_next']['prev'] is None


class TestRelatedPosts:
    """Test cases for related post matching."""

    def test_find_related(self):
        a = FakePost('/a/', ['python', 'web', 'notes'], '2023-01-01')
        b = FakePost('/b/', ['python', 'web'], '2023-02-01')
        c = FakePost('/c/', ['python', 'web', 'notes'], '2022-01-01')
        d = FakePost('/d/', ['python'], '2023-03-01')
        related = find_related([a, b, c, d], {'default_matches_min': 2, 'max_related_posts': 4})

        # c shares three tags with a, b shares two
        assert related['/a/'] == [c, b]
        # a and b share two tags each with each other; newest first on ties
        assert related['/b/'] == [a, c]
        assert '/d/' not in related

    def test_excluded_tags_and_limit(self):
        a = FakePost('/a/', ['python', 'web'])
        b = FakePost('/b/', ['python', 'web'])
        c = FakePost('/c/', ['python', 'web'])
        related = find_related([a, b, c], {'default_matches_min': 1, 'exclude_taxonomies': ['web'],
                                           'max_related_posts': 1})
        assert len(related['/a/']) == 1

        related = find_related([a, b, c], {'default_matches_min': 2, 'exclude_taxonomies': ['web']})
        assert related == {}


class TestProductReviews:
    """Test cases for product and review processing."""

    def test_rating_label(self):
        alts = {0: 'Dreadful', 3.5: 'Decent', 4: 'Good', 4.5: 'Great'}
        assert rating_label(4, alts) == 'Good'
        assert rating_label(3.7, alts) == 'Decent'
        assert rating_label(4.5, alts) == 'Great'
        assert rating_label('4', {'4': 'From YAML'}) == 'From YAML'
        assert rating_label(2, alts) is None

    def test_rating_stars(self):
        assert rating_stars(3.5) == ['full', 'full', 'full', 'half', 'none']
        assert rating_stars(5) == ['full'] * 5
        assert rating_stars(0, best=3) == ['none'] * 3

    def test_process_review_and_product(self, ctx, pipeline, site_dir):
        load_plugins(ctx)
        path = write_file(Path(site_dir, '_posts', '2023-01-10-widget.md'), """---
products:
  - name: Widget
    offers:
      offered_by: Shop
      url: https://shop.example/widget
      price: 9.99
reviews:
  - rating: 4.5
    description: Very good widget.
---
Review text.
""")
        article = run(pipeline.parse(path))

        review = article.reviews[1]
        assert review['rating_str'] == '4.5 out of 5'
        assert review['rating_label'] == 'Great'
        assert [s['kind'] for s in review['rating_stars']] == ['full'] * 4 + ['half']

        product = article.products[1]
        assert product['offers'][0]['offer_str'] == '<a href="https://shop.example/widget">Shop</a> £9.99'
        assert product['review_url'] == '/widget/'

        assert ctx.ext('products')['/widget/#1'] is product
        assert ctx.ext('reviews')['/widget/#1'] is review

    def test_free_price_and_unit_codes(self, ctx, pipeline, site_dir):
        load_plugins(ctx)
        path = write_file(Path(site_dir, 'app.md'), """---
products:
  app:
    name: App
    offers:
      - offered_by: Store
        price_specification:
          - name: Basic
            price: 0
          - name: Pro
            price: 3
            price_currency: USD
            reference_quantity: {unit_code: MON}
---
Text.
""")
        article = run(pipeline.parse(path))
        offer_str = article.products['app']['offers'][0]['offer_str']
        assert '<li>Basic Free</li>' in offer_str
        assert '<li>Pro $3/month</li>' in offer_str

    def test_unknown_currency_is_logged(self, ctx, caplog):
        load_plugins(ctx)
        article = type('A', (), {'rel_path': '/x.md', 'url': '/x/', 'reviews': {}, 'products': {}})()
        processor = ProductReviewProcessor(ctx, article)
        assert processor.currency('XYZ', 1) is None
        assert "No currency defined for 'XYZ'" in caplog.text


class TestTaxonomyPages:
    """Test cases for generated taxonomy pages."""

    def test_fill_taxonomy_dummy(self):
        taxonomy = Taxonomy('Machine Learning', 'tags', '/tags')
        template = "-taxonomyNameStr-|-taxonomyNameStrPlural-|-taxonomyPath-|-taxonomySlug-|-taxonomy-|-taxonomyType-"
        out = fill_taxonomy_dummy(template, taxonomy, {'name_str': ['Tag', 'Tags']})
        assert out == 'Tag|Tags|/tags|machine-learning|Machine Learning|tags'

    def test_fill_keeps_front_matter_valid(self):
        taxonomy = Taxonomy('say "hi": now', 'tags', '/tags')
        template = '---\nname: "-taxonomyNameStr-: -taxonomy-"\npermalink: "-taxonomyPath-/-taxonomySlug-"\n---\nBody -taxonomy-.'
        out = fill_taxonomy_dummy(template, taxonomy, {'name_str': ['Tag', 'Tags']})
        data, body = parse_front_matter(out)
        assert data == {'name': 'Tag: say "hi": now', 'permalink': '/tags/say-hi-now'}
        assert body == 'Body say "hi": now.'

    def test_pages_are_generated(self, ctx, pipeline, site_dir):
        load_plugins(ctx)
        for rel in ('_posts/2023-01-01-hello-world.md', '_posts/2023-02-01-second-post.md'):
            run(pipeline.parse(str(Path(site_dir, rel))))
        ctx.index.sort_all()
        run(ctx.emit(Event.AFTER_PARSE_LATE, ctx))

        page = ctx.index.all.get('/tags/python/')
        assert page is not None
        assert page.is_dummy
        assert page.name == 'Tag: python'
        assert page.extensions['taxonomy'].name == 'python'
        assert page.paginate == {'data': 'taxonomy.tags.python'}
        assert ctx.paginate['/tags/python/'] is page
        assert [c['url'] for c in page.breadcrumbs] == ['/', '/tags/', '/tags/python/']

        # The other AFTER_PARSE_LATE plugins ran too
        second = ctx.index.all.get('/second-post/')
        assert second.extensions['prev_next']['prev']['url'] == '/hello-world/'
        assert second.extensions['related_posts'][0]['url'] == '/hello-world/'

    def test_quoted_tag_gets_a_page(self, ctx, pipeline, site_dir):
        load_plugins(ctx)
        path = write_file(Path(site_dir, '_posts', '2023-03-01-greeting.md'), "---\ntags: ['say \"hi\"']\n---\nHello.")
        run(pipeline.parse(path))
        ctx.index.sort_all()
        run(ctx.emit(Event.AFTER_PARSE_LATE, ctx))

        page = ctx.index.all.get('/tags/say-hi/')
        assert page is not None
        assert page.name == 'Tag: say "hi"'
        assert page.paginate == {'data': 'taxonomy.tags.say "hi"'}
        assert ctx.counts['failed'] == 0


class TestImagesPlugin:
    """Test cases for the images plugin wiring."""

    def test_images_are_selected_and_expanded(self, ctx, pipeline, site_dir):
        load_plugins(ctx)
        make_image(Path(site_dir, 'assets', 'images', 'photo-800w.jpg'), 800, 400)
        run(ctx.emit(Event.BEFORE_PARSE_EARLY, ctx))
        run(ctx.get_parser('jpg')(str(Path(site_dir, 'assets', 'images', 'photo-800w.jpg'))))
        run(ctx.emit(Event.AFTER_PARSE_EARLY, ctx))
        assert Path(ctx.output_dir, 'assets', 'images', 'photo-640w.jpg').is_file()

        path = write_file(Path(site_dir, 'gallery.md'),
                          "Look: (((image-/assets/images/photo-800w.jpg|alt=Photo|caption=A photo)))")
        article = run(pipeline.parse(path))
        selected = article.extensions['images']['selected']
        assert selected['featured']['url'] == '/assets/images/photo-768w.jpg'

        run(ctx.emit_for_article(Event.ARTICLE_PRERENDER, article))
        assert '<figure><a href="/assets/images/photo-768w.jpg"><img src="/assets/images/photo-768w.jpg"' \
            in article.content.html
        assert '(((image-' not in article.content.html
        assert ctx.counts['images'] == 1

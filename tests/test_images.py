"""Tests for image processing and image selection."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from folio_pkg.content import MultiFormat
from folio_pkg.errors import ImageError
from folio_pkg.images import ImageRecord, ImageRegistry
from folio_pkg.plugins.images import image_html, parse_image_tag, select_images

from conftest import make_image, run


SPEC = {'sizes_required': [1024, 640, 320], 'default_size': 640}


@pytest.fixture
def registry(temp_dir):
    return ImageRegistry(temp_dir, os.path.join(temp_dir, '_cache'), SPEC)


class TestImageRegistry:
    """Test cases for ImageRegistry."""

    def test_resizeable_detection(self, registry):
        assert registry.is_resizable('/x/photo-1920w.jpg')
        assert not registry.is_resizable('/x/photo.jpg')
        assert not registry.is_resizable('/x/icon-64w.gif')

    def test_wanted_sizes(self, registry):
        assert registry.wanted_sizes(800) == [640, 320]
        assert registry.wanted_sizes(2000) == [1024, 640, 320]
        # Too small for any size keeps its own width
        assert registry.wanted_sizes(200) == [200]
        assert registry.wanted_sizes(None) == []

    def test_wanted_sizes_with_upscaling(self, temp_dir):
        registry = ImageRegistry(temp_dir, os.path.join(temp_dir, '_cache'), dict(SPEC, upscaling=True))
        assert registry.wanted_sizes(200) == [1024, 640, 320]

    def test_resizeable_image_variants(self, registry, temp_dir):
        source = make_image(Path(temp_dir, 'images', 'photo-800w.jpg'), 800, 400)
        record = run(registry.resolve(source))

        assert record.rel_path == '/images/photo-800w.jpg'
        assert (record.width, record.height) == (800, 400)
        assert sorted(record.subs) == [320, 640]
        assert record.subs[640].url == '/images/photo-640w.jpg'
        assert (record.subs[320].width, record.subs[320].height) == (320, 160)
        assert record.smallest.width == 320
        assert record.biggest.width == 640
        assert os.path.isfile(registry.cache_path('/images/photo-640w.jpg'))
        assert registry.resize_count == 2

    def test_second_run_is_idempotent(self, registry, temp_dir):
        """Unchanged sources are not regenerated."""
        source = make_image(Path(temp_dir, 'images', 'photo-800w.jpg'), 800, 400)
        run(registry.resolve(source))
        registry.save_cache()

        again = ImageRegistry(temp_dir, os.path.join(temp_dir, '_cache'), SPEC)
        again.load_cache()
        record = run(again.resolve(source))
        assert again.resize_count == 0
        assert sorted(record.subs) == [320, 640]

    def test_changed_source_is_regenerated(self, registry, temp_dir):
        source = make_image(Path(temp_dir, 'images', 'photo-800w.jpg'), 800, 400)
        run(registry.resolve(source))
        registry.save_cache()

        make_image(source, 700, 700)
        again = ImageRegistry(temp_dir, os.path.join(temp_dir, '_cache'), SPEC)
        again.load_cache()
        record = run(again.resolve(source))
        assert again.resize_count == 2
        assert record.subs[640].height == 640

    def test_no_cache_check_only_fills_missing(self, registry, temp_dir):
        source = make_image(Path(temp_dir, 'images', 'photo-800w.jpg'), 800, 400)
        run(registry.resolve(source))

        make_image(source, 700, 700)
        again = ImageRegistry(temp_dir, os.path.join(temp_dir, '_cache'), dict(SPEC, cache_check=False))
        run(again.resolve(source))
        assert again.resize_count == 0

    def test_standard_image_is_copied(self, registry, temp_dir):
        source = make_image(Path(temp_dir, 'images', 'logo.png'), 50, 50, fmt='PNG')
        record = run(registry.resolve(source))
        assert not record.is_resizeable
        assert record.variant_for(640) is record
        assert registry.copy_count == 1
        assert os.path.isfile(registry.cache_path('/images/logo.png'))

    def test_missing_source(self, registry, temp_dir):
        with pytest.raises(ImageError, match="does not exist"):
            registry.requires_refresh(os.path.join(temp_dir, 'out.jpg'), os.path.join(temp_dir, 'nope.jpg'))

    def test_copy_to_output_skips_originals(self, registry, temp_dir):
        source = make_image(Path(temp_dir, 'images', 'photo-800w.jpg'), 800, 400)
        run(registry.resolve(source))
        out = os.path.join(temp_dir, '_site')
        assert registry.copy_to_output(out) == 2
        assert os.path.isfile(os.path.join(out, 'images', 'photo-320w.jpg'))
        assert not os.path.exists(os.path.join(out, 'images', 'photo-800w.jpg.orig'))

    def test_resize_failure_is_logged(self, registry, temp_dir, caplog):
        source = make_image(Path(temp_dir, 'images', 'photo-800w.jpg'), 800, 400)
        with patch('folio_pkg.images.pillow_resize', side_effect=OSError("disk full")):
            record = run(registry.resolve(source))
        assert record.subs == {}
        assert "disk full" in caplog.text


class FakeArticle:
    def __init__(self, images=None, content_html=''):
        self.rel_path = '/a.md'
        self.images = images or {}
        self.formats = {'content': MultiFormat.from_html(content_html)}


def resizeable(rel_path, sizes):
    record = ImageRecord(rel_path, max(sizes), max(sizes) // 2)
    record.subs = {s: ImageRecord(rel_path.replace('-big', f'-{s}w'), s, s // 2, is_variant=True)
                   for s in sorted(sizes)}
    return record


class FakeRegistry:
    def __init__(self, records):
        self.records = {r.rel_path: r for r in records}

    def get(self, rel_path):
        return self.records.get(rel_path)


class TestSelectImages:
    """Test cases for per-purpose image selection."""

    def test_first_resizeable_is_featured(self):
        plain = ImageRecord('/plain.png', 100, 100)
        big = resizeable('/photo-big.jpg', [320, 640])
        article = FakeArticle({'a': '/plain.png', 'b': '/photo-big.jpg'})
        selected = select_images(article, FakeRegistry([plain, big]), {
            'default_size': 640, 'use_first_resizeable_as_featured': True})

        assert selected['featured']['url'] == '/photo-640w.jpg'
        # featured back-fills og, og back-fills twitter and rss
        assert selected['og'] == selected['featured']
        assert selected['twitter'] == selected['featured']
        assert selected['rss'] == selected['featured']
        assert 'icon' not in selected

    def test_flagged_image_wins(self):
        first = resizeable('/first-big.jpg', [320, 640])
        second = resizeable('/second-big.jpg', [320, 640])
        article = FakeArticle({
            'a': {'url': '/first-big.jpg'},
            'b': {'url': '/second-big.jpg', 'featured': True, 'icon': True},
        })
        selected = select_images(article, FakeRegistry([first, second]), {
            'default_size': 640, 'use_first_resizeable_as_featured': True})
        assert selected['featured']['url'] == '/second-640w.jpg'
        assert selected['icon']['url'] == '/second-320w.jpg'

    def test_first_any_fallback(self):
        plain = ImageRecord('/plain.png', 100, 100)
        article = FakeArticle({'a': '/plain.png'})
        selected = select_images(article, FakeRegistry([plain]), {'use_first_any_as_featured': True})
        assert selected['featured'] == {'url': '/plain.png', 'width': 100, 'height': 100}

    def test_default_image_fallback(self):
        selected = select_images(FakeArticle(), FakeRegistry([]), {}, default_image='/default.jpg')
        assert selected['featured']['url'] == '/default.jpg'

    def test_content_tags_count(self):
        big = resizeable('/photo-big.jpg', [320])
        article = FakeArticle(content_html='<p>(((image-/photo-big.jpg|alt=A photo)))</p>')
        selected = select_images(article, FakeRegistry([big]), {'use_first_resizeable_as_featured': True})
        assert selected['featured']['url'] == '/photo-320w.jpg'

    def test_nothing_selected(self):
        assert select_images(FakeArticle(), FakeRegistry([]), {}) == {}


class TestImageTags:
    """Test cases for image tag parsing and markup."""

    def test_parse_image_tag(self, caplog):
        tag, params = parse_image_tag('hero|alt=A hero|caption=Nice|bogus=1|noequals')
        assert tag == 'hero'
        assert params == {'alt': 'A hero', 'caption': 'Nice'}
        assert "does not support parameter 'bogus'" in caplog.text

    def test_image_html_resizeable(self):
        record = resizeable('/photo-big.jpg', [320, 640])
        out = image_html(record, {'alt': 'A "quoted" photo'}, {'default_size': 640, 'default_link': 'self'})
        assert out.startswith('<a href="/photo-640w.jpg"><img src="/photo-640w.jpg"')
        assert 'srcset="/photo-320w.jpg 320w, /photo-640w.jpg 640w"' in out
        assert 'alt="A &quot;quoted&quot; photo"' in out
        assert 'width="640" height="320"' in out
        assert 'loading="lazy"' in out

    def test_image_html_figure_and_no_link(self):
        record = ImageRecord('/plain.png', 10, 10)
        out = image_html(record, {'caption': 'Cap', 'credit': 'Me', 'link': 'none', 'fig_class': 'wide'},
                         {'default_link': 'self'}, qualify=lambda u: 'https://example.com' + u, lazy=False)
        assert out == ('<figure class="wide"><img src="https://example.com/plain.png" alt="" '
                       'width="10" height="10" /><figcaption>Cap Me</figcaption></figure>')

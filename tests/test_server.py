"""Tests for the preview server path mapping."""

import os
from pathlib import Path

from folio_pkg.server import MIME_TYPES, SiteRequestHandler, resolve_path

from conftest import write_file


class TestResolvePath:
    """Test cases for resolve_path."""

    def test_directory_index(self, temp_dir):
        index = write_file(Path(temp_dir, 'index.html'), 'home')
        post = write_file(Path(temp_dir, 'hello', 'index.html'), 'post')
        assert resolve_path(temp_dir, '/') == index
        assert resolve_path(temp_dir, '/hello/') == post
        assert resolve_path(temp_dir, '/hello') == post

    def test_extensionless_html(self, temp_dir):
        about = write_file(Path(temp_dir, 'about.html'), 'about')
        assert resolve_path(temp_dir, '/about') == about

    def test_query_and_quoting(self, temp_dir):
        page = write_file(Path(temp_dir, 'my page.html'), 'x')
        assert resolve_path(temp_dir, '/my%20page.html?x=1') == page

    def test_missing(self, temp_dir):
        assert resolve_path(temp_dir, '/nope/') is None
        assert resolve_path(temp_dir, '/nope.css') is None

    def test_traversal_is_refused(self, temp_dir):
        root = os.path.join(temp_dir, 'site')
        os.makedirs(root)
        write_file(Path(temp_dir, 'secret.txt'), 'secret')
        assert resolve_path(root, '/../secret.txt') is None

    def test_mime_types(self):
        assert SiteRequestHandler.extensions_map['.webp'] == MIME_TYPES['.webp']
        assert MIME_TYPES['.html'].startswith('text/html')

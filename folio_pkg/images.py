"""
Image registry with responsive variant caching.

Source images whose names carry a width suffix (``photo-1920w.jpg``) are
"resizeable": each gets a set of width variants (``photo-1024w.jpg`` and so
on) generated into the cache directory. Other images are copied into the
cache as they are. A JSON map of cache file to source MD5 decides what
needs regenerating between runs.
"""

import asyncio
import json
import logging
import os
import re
import shutil
from typing import Dict, List, Optional

from PIL import Image

from .errors import ImageError
from .utils import file_md5

DEFAULT_IMAGE_SPEC = {
    'resizeable_exts': ['jpeg', 'jpg', 'png'],
    'exts': ['gif', 'jpg', 'jpeg', 'png', 'webp', 'tiff', 'svg'],
    'sizes_required': [1920, 1600, 1366, 1024, 768, 640, 320],
    'default_size': 1024,
    'resizeable_file_name_regex': r'-\d{2,6}w\.',
    'cache_mds': True,
    'cache_check': True,
    'upscaling': False,
    'cache_images': 'images',
    'cache_file': 'images.json',
    'default_link': 'self',
    'use_first_resizeable_as_featured': True,
    'use_first_any_as_featured': True,
}


class ImageRecord:
    """A source image, or one of its generated variants."""

    def __init__(self, rel_path: str, width: Optional[int] = None, height: Optional[int] = None,
                 is_variant: bool = False):
        self.rel_path = rel_path
        self.width = width
        self.height = height
        self.is_variant = is_variant
        self.subs: Optional[Dict[int, 'ImageRecord']] = None

    @property
    def url(self) -> str:
        return self.rel_path

    @property
    def is_resizeable(self) -> bool:
        return self.subs is not None

    def has_subimages(self) -> bool:
        return bool(self.subs)

    @property
    def smallest(self) -> Optional['ImageRecord']:
        if not self.subs:
            return None
        return self.subs[min(self.subs)]

    @property
    def biggest(self) -> Optional['ImageRecord']:
        if not self.subs:
            return None
        return self.subs[max(self.subs)]

    def variant_for(self, size: int) -> 'ImageRecord':
        """The variant of the given width, else the biggest, else this image."""
        if self.subs:
            return self.subs.get(size) or self.biggest
        return self

    def srcset(self) -> str:
        if not self.subs:
            return ''
        return ', '.join(f"{sub.url} {width}w" for width, sub in sorted(self.subs.items()))

    def as_dict(self) -> dict:
        return {'url': self.url, 'width': self.width, 'height': self.height}

    def __repr__(self):
        return f"ImageRecord({self.rel_path!r}, {self.width}x{self.height}, subs={sorted(self.subs or [])})"


def image_size(path: str):
    """Intrinsic (width, height) of an image, or (None, None) if Pillow can't read it."""
    try:
        with Image.open(path) as img:
            return img.size
    except (IOError, OSError, Image.DecompressionBombError):
        return None, None


def pillow_resize(source: str, dest: str, width: int):
    """Resize ``source`` to ``width`` pixels wide and write it to ``dest``."""
    with Image.open(source) as img:
        height = max(1, round(img.height * width / img.width))
        resized = img.resize((width, height), Image.LANCZOS)
        fmt = img.format
        if fmt == 'JPEG' and resized.mode not in ('RGB', 'L'):
            resized = resized.convert('RGB')
        resized.save(dest, format=fmt)
    return width, height


class ImageRegistry:
    """
    Maps site-relative image paths to ImageRecords, creating cached variants
    as needed.
    """

    def __init__(self, site_dir: str, cache_dir: str, spec: Optional[dict] = None):
        self.site_dir = os.path.abspath(site_dir)
        self.cache_dir = os.path.abspath(cache_dir)
        self.spec = dict(DEFAULT_IMAGE_SPEC)
        self.spec.update(spec or {})
        self.logger = logging.getLogger('Folio.ImageRegistry')
        self.images: Dict[str, ImageRecord] = {}
        self.cache: Dict[str, str] = {}
        self.cache_check = bool(self.spec.get('cache_check', True))
        self.resize_count = 0
        self.copy_count = 0
        self._regex = re.compile(self.spec['resizeable_file_name_regex'])

    # ------------------------------------------------------------------
    # Cache file
    # ------------------------------------------------------------------

    @property
    def cache_images_dir(self) -> str:
        return os.path.join(self.cache_dir, self.spec['cache_images'])

    @property
    def cache_file(self) -> str:
        return os.path.join(self.cache_dir, self.spec['cache_file'])

    def load_cache(self) -> Dict[str, str]:
        self.cache = {}
        if self.spec.get('cache_mds') and os.path.isfile(self.cache_file):
            try:
                with open(self.cache_file, 'r', encoding='utf-8') as f:
                    self.cache = json.load(f) or {}
            except (json.JSONDecodeError, OSError) as e:
                self.logger.warning(f"Ignoring unreadable image cache {self.cache_file}: {e}")
                self.cache = {}
        return self.cache

    def save_cache(self) -> None:
        if not self.spec.get('cache_mds'):
            return
        os.makedirs(self.cache_dir, exist_ok=True)
        with open(self.cache_file, 'w', encoding='utf-8') as f:
            json.dump(self.cache, f, indent=1, sort_keys=True)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def rel_path(self, file_path: str) -> str:
        return '/' + os.path.relpath(os.path.abspath(file_path), self.site_dir).replace(os.sep, '/')

    def cache_path(self, rel_path: str) -> str:
        return os.path.join(self.cache_images_dir, rel_path.lstrip('/'))

    def get(self, rel_path: str) -> Optional[ImageRecord]:
        if rel_path and not rel_path.startswith('/'):
            rel_path = '/' + rel_path
        return self.images.get(rel_path)

    def has(self, rel_path: str) -> bool:
        return self.get(rel_path) is not None

    def __len__(self):
        return len(self.images)

    def is_resizable(self, path: str) -> bool:
        """
        A resizeable source has a width suffix in its name and a resizeable
        extension.
        """
        basename = os.path.basename(path)
        ext = os.path.splitext(basename)[1].lstrip('.').lower()
        return bool(self._regex.search(basename)) and ext in self.spec['resizeable_exts']

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    def requires_refresh(self, cache_path: str, source_path: str):
        """
        Decide whether a cached output must be regenerated from its source.

        A missing output always needs refreshing. Otherwise the source's MD5
        is compared with the cache map entry for the output or, when there is
        no entry, with the MD5 of the output file itself.

        Returns:
            The source MD5 if a refresh is needed, else False
        """
        if not os.path.exists(source_path):
            raise ImageError(f"Image file does not exist: {source_path}")

        if not os.path.exists(cache_path):
            self.logger.debug(f"Cache refresh required (new) for: {source_path}")
            return file_md5(source_path)

        if not self.cache_check:
            return False

        source_md = file_md5(source_path)
        if cache_path in self.cache:
            stale = self.cache[cache_path] != source_md
        else:
            stale = file_md5(cache_path) != source_md
            if not stale:
                self.cache[cache_path] = source_md

        if stale:
            self.logger.debug(f"Cache refresh required (md5) for: {source_path}")
            return source_md
        return False

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resize(self, source: str, dest: str, width: int):
        """Write a resized copy; Pillow runs in a worker thread."""
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        result = await asyncio.to_thread(pillow_resize, source, dest, width)
        self.resize_count += 1
        self.logger.info(f"Created resized image: {dest}")
        return result

    def variant_rel_path(self, rel_path: str, size: int) -> str:
        return self._regex.sub(f"-{size}w.", rel_path, count=1)

    def wanted_sizes(self, width: Optional[int]) -> List[int]:
        sizes = sorted(set(self.spec['sizes_required']), reverse=True)
        if width is None:
            return []
        if self.spec.get('upscaling'):
            return sizes
        wanted = [s for s in sizes if s <= width]
        # Too small for any configured size: keep its own width.
        return wanted or [width]

    async def resolve(self, source_path: str) -> ImageRecord:
        """
        Register an image, generating or copying whatever is stale.

        Returns:
            The ImageRecord
        """
        source_path = os.path.abspath(source_path)
        rel_path = self.rel_path(source_path)
        width, height = image_size(source_path)
        record = ImageRecord(rel_path, width, height)

        if self.is_resizable(source_path) and width is not None:
            await self._resolve_resizeable(record, source_path)
        else:
            self._resolve_standard(record, source_path)

        if rel_path in self.images:
            self.logger.warning(f"Image for {rel_path} already defined. It will be overwritten.")
        self.images[rel_path] = record
        return record

    async def _resolve_resizeable(self, record: ImageRecord, source_path: str) -> None:
        orig_cache = self.cache_path(record.rel_path) + '.orig'
        source_md = self.requires_refresh(orig_cache, source_path)
        refresh = bool(source_md)
        if refresh:
            self.logger.info(f"Processing image: {record.rel_path}")
            os.makedirs(os.path.dirname(orig_cache), exist_ok=True)
            shutil.copy2(source_path, orig_cache)
            self.cache[orig_cache] = source_md

        record.subs = {}
        to_create = []
        for size in self.wanted_sizes(record.width):
            sub_rel = self.variant_rel_path(record.rel_path, size)
            cache_path = self.cache_path(sub_rel)
            if refresh or not os.path.exists(cache_path):
                to_create.append((size, sub_rel, cache_path))
            else:
                sub_w, sub_h = image_size(cache_path)
                record.subs[size] = ImageRecord(sub_rel, sub_w, sub_h, is_variant=True)

        async def create(size, sub_rel, cache_path):
            try:
                sub_w, sub_h = await self.resize(source_path, cache_path, size)
            except (IOError, OSError, ValueError) as e:
                self.logger.error(f"Failed to create {sub_rel}: {e}")
                return
            record.subs[size] = ImageRecord(sub_rel, sub_w, sub_h, is_variant=True)

        await asyncio.gather(*(create(*item) for item in to_create))
        record.subs = dict(sorted(record.subs.items()))

    def _resolve_standard(self, record: ImageRecord, source_path: str) -> None:
        cache_path = self.cache_path(record.rel_path)
        source_md = self.requires_refresh(cache_path, source_path)
        if source_md:
            self.logger.info(f"Processing image: {record.rel_path}")
            os.makedirs(os.path.dirname(cache_path), exist_ok=True)
            shutil.copy2(source_path, cache_path)
            self.cache[cache_path] = source_md
            self.copy_count += 1

    def copy_to_output(self, output_dir: str) -> int:
        """Copy cached images into the output tree, skipping dotfiles and ``.orig`` backups."""
        copied = 0
        source_root = self.cache_images_dir
        if not os.path.isdir(source_root):
            return copied
        for root, dirs, files in os.walk(source_root):
            dirs[:] = [d for d in dirs if not d.startswith('.')]
            for name in files:
                if name.startswith('.') or name.endswith('.orig'):
                    continue
                src = os.path.join(root, name)
                dest = os.path.join(output_dir, os.path.relpath(src, source_root))
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                shutil.copy2(src, dest)
                copied += 1
        return copied

"""
Small helpers shared across the build: the config merge algorithm,
string helpers and file hashing.
"""

import copy
import hashlib
import re
import unicodedata
from typing import Any, Dict, Iterable, List


def deep_merge(base: Any, override: Any, replace_keys: Iterable[str] = ()) -> Any:
    """
    Merge ``override`` onto ``base`` and return the result.

    Scalars are last-wins, lists are unioned with duplicates removed (base
    items first, order preserved) and dicts are merged recursively. A list
    stored under one of ``replace_keys`` is taken from ``override`` as a
    whole instead. Neither input is modified.

    Args:
        base: Lower precedence value
        override: Higher precedence value
        replace_keys: Keys whose list values replace rather than union

    Returns:
        The merged value
    """
    if isinstance(base, dict) and isinstance(override, dict):
        merged = copy.deepcopy(base)
        for key, value in override.items():
            if key in replace_keys and isinstance(value, list):
                merged[key] = copy.deepcopy(value)
            elif key in merged:
                merged[key] = deep_merge(merged[key], value, replace_keys)
            else:
                merged[key] = copy.deepcopy(value)
        return merged

    if isinstance(base, list) and isinstance(override, list):
        merged = []
        for item in list(base) + list(override):
            if item not in merged:
                merged.append(copy.deepcopy(item))
        return merged

    return copy.deepcopy(override)


def merge_all(*layers: Dict[str, Any]) -> Dict[str, Any]:
    """Merge several layers, lowest precedence first. ``None`` layers are skipped."""
    result: Dict[str, Any] = {}
    for layer in layers:
        if layer:
            result = deep_merge(result, layer)
    return result


def make_list(value: Any) -> List[Any]:
    """Wrap a scalar in a list; ``None`` becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def ucfirst(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:]


def humanize(text: str) -> str:
    """Turn a file name like ``my-first_post`` into ``My first post``."""
    text = re.sub(r'[-_]+', ' ', text).strip()
    return ucfirst(text)


def slugify(text: str) -> str:
    text = unicodedata.normalize('NFKD', str(text)).encode('ascii', 'ignore').decode('ascii')
    text = re.sub(r'[^\w\s-]', '', text).strip().lower()
    return re.sub(r'[-\s]+', '-', text)


def count_words(text: str) -> int:
    if not text:
        return 0
    return len(text.split())


def truncate(text: str, length: int, ellipsis: str = '...') -> str:
    """Truncate text to at most ``length`` characters on a word boundary."""
    if not text or len(text) <= length:
        return text or ''
    cut = text[:length]
    if ' ' in cut:
        cut = cut[:cut.rindex(' ')]
    return cut.rstrip(' ,.;:') + ellipsis


def file_md5(path: str) -> str:
    """Return the MD5 hex digest of a file's content."""
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()

"""
Filesystem walker: finds the source files a build should consider.
"""

import os
from typing import Dict, List


class FileWalker:
    """
    Walks a site directory applying allow and ignore rules.

    ``ignore_paths`` entries starting with '/' are site-relative path prefixes;
    other entries are directory-name prefixes ('_' and '.' hide private
    directories). ``allow_paths`` re-admit paths that would otherwise be
    ignored. ``ignore_files`` are file-name prefixes, ``ignore_names`` exact
    file names and ``ignore_exts`` extensions.
    """

    def __init__(self, site_dir: str, rules: Dict, extra_ignore: List[str] = None):
        self.site_dir = os.path.abspath(site_dir)
        self.allow_paths = [p.rstrip('/') for p in rules.get('allow_paths', [])]
        self.ignore_paths = list(rules.get('ignore_paths', []))
        self.ignore_files = list(rules.get('ignore_files', []))
        self.ignore_names = set(rules.get('ignore_names', []))
        self.ignore_exts = [e.lstrip('.').lower() for e in rules.get('ignore_exts', [])]
        self.extra_ignore = [os.path.abspath(p) for p in (extra_ignore or [])]

    def _rel(self, path: str) -> str:
        rel = os.path.relpath(path, self.site_dir).replace(os.sep, '/')
        return '/' if rel == '.' else '/' + rel

    def is_allowed_dir(self, path: str) -> bool:
        if any(path == p or path.startswith(p + os.sep) for p in self.extra_ignore):
            return False
        rel = self._rel(path)
        for allowed in self.allow_paths:
            if rel == allowed or rel.startswith(allowed + '/'):
                return True
        name = os.path.basename(path)
        for rule in self.ignore_paths:
            if rule.startswith('/'):
                if rel == rule or rel.startswith(rule.rstrip('/') + '/'):
                    return False
            elif name.startswith(rule):
                return False
        return True

    def is_allowed_file(self, path: str) -> bool:
        name = os.path.basename(path)
        if name in self.ignore_names or any(name.startswith(prefix) for prefix in self.ignore_files):
            return False
        ext = os.path.splitext(name)[1].lstrip('.').lower()
        return ext not in self.ignore_exts

    def walk(self) -> List[str]:
        """Return absolute paths of every admissible file, sorted."""
        found = []
        for root, dirs, files in os.walk(self.site_dir):
            dirs[:] = sorted(d for d in dirs if self.is_allowed_dir(os.path.join(root, d)))
            for name in sorted(files):
                path = os.path.join(root, name)
                if self.is_allowed_file(path):
                    found.append(path)
        return found

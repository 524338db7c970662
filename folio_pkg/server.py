"""
Minimal static file server for previewing a built site.
"""

import logging
import os
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import unquote, urlsplit

MIME_TYPES = {
    '.html': 'text/html; charset=utf-8',
    '.htm': 'text/html; charset=utf-8',
    '.css': 'text/css; charset=utf-8',
    '.js': 'text/javascript; charset=utf-8',
    '.json': 'application/json',
    '.xml': 'application/xml',
    '.txt': 'text/plain; charset=utf-8',
    '.svg': 'image/svg+xml',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.ico': 'image/x-icon',
    '.woff': 'font/woff',
    '.woff2': 'font/woff2',
    '.ttf': 'font/ttf',
    '.pdf': 'application/pdf',
}

logger = logging.getLogger('Folio.Server')


def resolve_path(root, url_path, index='index.html'):
    """
    Map a request path onto a file under ``root``.

    ``/`` and directories resolve to their index file; a path with no
    extension also tries ``<path>.html``. Paths escaping ``root`` resolve to
    nothing.

    Returns:
        Absolute file path, or None
    """
    root = os.path.abspath(root)
    rel = unquote(urlsplit(url_path).path).lstrip('/')
    candidate = os.path.abspath(os.path.join(root, rel))
    if candidate != root and not candidate.startswith(root + os.sep):
        return None

    if os.path.isdir(candidate):
        candidate = os.path.join(candidate, index)
    elif not os.path.exists(candidate) and not os.path.splitext(candidate)[1]:
        candidate = candidate.rstrip(os.sep) + '.html'

    return candidate if os.path.isfile(candidate) else None


class SiteRequestHandler(SimpleHTTPRequestHandler):
    """Serves the output tree with the site's own 404 page."""

    extensions_map = dict(SimpleHTTPRequestHandler.extensions_map, **MIME_TYPES)

    def __init__(self, *args, directory=None, not_found='404.html', **kwargs):
        self.not_found = not_found
        super().__init__(*args, directory=directory, **kwargs)

    def send_head(self):
        path = resolve_path(self.directory, self.path)
        status = 200
        if path is None:
            status = 404
            path = os.path.join(self.directory, self.not_found)
            if not os.path.isfile(path):
                self.send_error(404, "File not found")
                return None

        ctype = self.guess_type(path)
        f = open(path, 'rb')
        try:
            fs = os.fstat(f.fileno())
            self.send_response(status)
            self.send_header('Content-Type', ctype)
            self.send_header('Content-Length', str(fs.st_size))
            self.end_headers()
        except OSError:
            f.close()
            raise
        return f

    def log_message(self, format, *args):
        logger.debug("%s - %s" % (self.address_string(), format % args))


def serve(directory, addr='127.0.0.1', port=8081):
    """Serve ``directory`` until interrupted."""
    handler = partial(SiteRequestHandler, directory=os.path.abspath(directory))
    httpd = ThreadingHTTPServer((addr, int(port)), handler)
    logger.warning(f"Serving {directory} at http://{addr}:{port}/ (Ctrl+C to stop)")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.warning("Server stopped.")
    finally:
        httpd.server_close()

"""OAuth callback helpers."""

import re

SAFE_PATH_PATTERN = re.compile(r'/[a-zA-Z0-9\-_/?=&]*')


def sanitize_redirect_url(url):
    """Only allow plain relative paths as post-login redirects; anything else goes home."""
    if url and url.startswith('/') and '//' not in url and SAFE_PATH_PATTERN.fullmatch(url):
        return url
    return '/'

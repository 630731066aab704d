"""
Video URL classification

Maps user-supplied links to a platform and canonical video ID. Hostnames are
checked against per-platform allowlists before any path or query parsing.
"""

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse, parse_qs, quote

import requests


class Platform(str, Enum):
    YOUTUBE = 'YOUTUBE'
    TIKTOK = 'TIKTOK'
    TWITCH = 'TWITCH'


@dataclass(frozen=True)
class VideoReference:
    platform: Platform
    video_id: str

    def to_dict(self):
        return {'platform': self.platform.value, 'video_id': self.video_id}


# Allowed hostnames per platform (subdomains match on a dot boundary)
ALLOWED_YOUTUBE_DOMAINS = ('youtube.com', 'www.youtube.com', 'm.youtube.com', 'youtu.be')
ALLOWED_TIKTOK_DOMAINS = ('tiktok.com', 'www.tiktok.com', 'vm.tiktok.com')
ALLOWED_TWITCH_DOMAINS = ('twitch.tv', 'www.twitch.tv', 'clips.twitch.tv', 'm.twitch.tv')

ALLOWED_SCHEMES = ('http', 'https')

YOUTUBE_SHORTS_PATTERN = re.compile(r'^/shorts/([A-Za-z0-9_-]+)')
TIKTOK_VIDEO_PATTERN = re.compile(r'/video/(\d+)')
HOSTNAME_PATTERN = re.compile(r'[a-z0-9.-]+')
# Browsers read a backslash as a path separator; urlparse keeps it in the host
UNSAFE_URL_CHARS = re.compile(r'[\\\x00-\x20\x7f]')

DEFAULT_TITLE = 'Video'


def is_valid_domain(hostname, allowed_domains):
    """Check hostname against an allowlist using a dot-boundary suffix match."""
    if not hostname:
        return False
    host = hostname.lower()
    return any(host == domain or host.endswith('.' + domain) for domain in allowed_domains)


def _first_path_segment(path):
    return path.lstrip('/').split('/')[0]


def _youtube_id(hostname, parsed):
    if is_valid_domain(hostname, ('youtu.be',)):
        # Short links: https://youtu.be/VIDEO_ID
        return _first_path_segment(parsed.path)

    shorts = YOUTUBE_SHORTS_PATTERN.match(parsed.path)
    if shorts:
        return shorts.group(1)

    values = parse_qs(parsed.query).get('v')
    return values[0] if values else None


def _tiktok_id(parsed):
    match = TIKTOK_VIDEO_PATTERN.search(parsed.path)
    return match.group(1) if match else None


def _twitch_id(hostname, parsed):
    if hostname == 'clips.twitch.tv':
        slug = _first_path_segment(parsed.path)
        if slug:
            return slug

    # Channel clip links: https://www.twitch.tv/<channel>/clip/<slug>
    if '/clip/' in parsed.path:
        return parsed.path.split('/clip/', 1)[1].split('/')[0]
    return None


def classify_video_url(url):
    """
    Classify a video link.

    Args:
        url: Raw URL string, possibly attacker-controlled

    Returns:
        VideoReference, or None when the URL is malformed, its host is not
        allowlisted, or no video ID can be extracted
    """
    if not isinstance(url, str) or not url.strip():
        return None

    url = url.strip()
    if UNSAFE_URL_CHARS.search(url):
        return None

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        parsed.port  # raises ValueError on a non-numeric or out-of-range port
    except ValueError:
        return None

    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not hostname:
        return None

    hostname = hostname.lower()
    if not HOSTNAME_PATTERN.fullmatch(hostname):
        return None

    if is_valid_domain(hostname, ALLOWED_YOUTUBE_DOMAINS):
        platform, video_id = Platform.YOUTUBE, _youtube_id(hostname, parsed)
    elif is_valid_domain(hostname, ALLOWED_TIKTOK_DOMAINS):
        platform, video_id = Platform.TIKTOK, _tiktok_id(parsed)
    elif is_valid_domain(hostname, ALLOWED_TWITCH_DOMAINS):
        platform, video_id = Platform.TWITCH, _twitch_id(hostname, parsed)
    else:
        return None

    if not video_id or not video_id.strip():
        return None

    return VideoReference(platform, video_id)


def is_url_valid(url):
    """True when the URL classifies to a supported video."""
    return classify_video_url(url) is not None


def get_embed_url(video_id, platform, parent=None):
    """Convert a classified video to its embeddable player URL."""
    platform = Platform(platform)
    if platform == Platform.YOUTUBE:
        return f'https://www.youtube.com/embed/{video_id}'
    elif platform == Platform.TIKTOK:
        return f'https://www.tiktok.com/embed/{video_id}'
    # Twitch refuses to embed without the parent host
    url = f'https://clips.twitch.tv/embed?clip={quote(video_id, safe="")}'
    if parent:
        url += f'&parent={quote(parent, safe="")}'
    return url


def get_thumbnail_url(video_id, platform):
    """Get a thumbnail URL without a network call (YouTube only)."""
    if Platform(platform) == Platform.YOUTUBE:
        return f'https://img.youtube.com/vi/{video_id}/hqdefault.jpg'
    return None


def canonical_url(reference):
    """Build the canonical watch URL for a classified video."""
    if reference.platform == Platform.YOUTUBE:
        return f'https://www.youtube.com/watch?v={reference.video_id}'
    elif reference.platform == Platform.TIKTOK:
        # TikTok resolves the video without the real author handle
        return f'https://www.tiktok.com/@_/video/{reference.video_id}'
    return f'https://clips.twitch.tv/{reference.video_id}'


def _oembed_endpoint(video_id, platform):
    if platform == Platform.YOUTUBE:
        watch_url = f'https://www.youtube.com/watch?v={video_id}'
        return f'https://www.youtube.com/oembed?url={quote(watch_url, safe="")}&format=json'
    elif platform == Platform.TIKTOK:
        watch_url = f'https://www.tiktok.com/@_/video/{video_id}'
        return f'https://www.tiktok.com/oembed?url={quote(watch_url, safe="")}'
    return None


def fetch_video_metadata(video_id, platform, api_key=None, timeout=5):
    """
    Best-effort title and thumbnail lookup.

    Tries the platform oEmbed endpoint first (no key needed), then the
    YouTube Data API when a key is given. Never raises; any failure falls
    back to the default title.

    Returns:
        dict with 'title' and 'thumbnail_url' (and 'description' when known)
    """
    try:
        platform = Platform(platform)
    except ValueError:
        return {'title': DEFAULT_TITLE, 'thumbnail_url': None}
    fallback = {'title': DEFAULT_TITLE, 'thumbnail_url': get_thumbnail_url(video_id, platform)}

    oembed_url = _oembed_endpoint(video_id, platform)
    if oembed_url:
        try:
            response = requests.get(oembed_url, headers={'User-Agent': 'Mozilla/5.0'}, timeout=timeout)
            if response.ok:
                data = response.json()
                return {
                    'title': data.get('title') or DEFAULT_TITLE,
                    'thumbnail_url': data.get('thumbnail_url') or fallback['thumbnail_url'],
                }
        except (requests.RequestException, ValueError) as e:
            print(f"[METADATA] oEmbed lookup failed for {platform.value} {video_id}: {e}")

    if platform == Platform.YOUTUBE and api_key:
        try:
            response = requests.get(
                'https://www.googleapis.com/youtube/v3/videos',
                params={'id': video_id, 'part': 'snippet', 'key': api_key},
                timeout=timeout
            )
            items = response.json().get('items') or []
            if items:
                snippet = items[0].get('snippet', {})
                return {
                    'title': snippet.get('title') or DEFAULT_TITLE,
                    'thumbnail_url': snippet.get('thumbnails', {}).get('medium', {}).get('url') or fallback['thumbnail_url'],
                    'description': snippet.get('description', ''),
                }
        except (requests.RequestException, ValueError) as e:
            print(f"[METADATA] YouTube API lookup failed for {video_id}: {e}")

    return fallback

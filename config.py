"""
Contest Clips configuration

Values come from the environment; a local .env file is loaded first for
development.
"""

import os
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()


def _int_env(name, default):
    """Read an integer variable, falling back to default on bad input."""
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        print(f"[STARTUP] Invalid value for {name}, using {default}")
        return default


def _float_env(name, default):
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        print(f"[STARTUP] Invalid value for {name}, using {default}")
        return default


def load_config():
    """Build the app configuration dict from the environment."""
    app_url = os.environ.get('APP_URL', 'http://localhost:5001').rstrip('/')
    return {
        'SUPABASE_URL': os.environ.get('SUPABASE_URL', ''),
        'SUPABASE_KEY': os.environ.get('SUPABASE_KEY', ''),
        'SECRET_KEY': os.environ.get('SECRET_KEY', 'contest-clips-dev-secret-key'),
        'APP_URL': app_url,
        'OAUTH_PROVIDER': os.environ.get('OAUTH_PROVIDER', 'twitch'),
        'YOUTUBE_API_KEY': os.environ.get('YOUTUBE_API_KEY', ''),
        'PROFILE_TIMEOUT_SECONDS': _float_env('PROFILE_TIMEOUT_SECONDS', 5),
        'PROFILE_RETRIES': _int_env('PROFILE_RETRIES', 1),
        'METADATA_TIMEOUT_SECONDS': _float_env('METADATA_TIMEOUT_SECONDS', 5),
        'TWITCH_EMBED_PARENT': os.environ.get('TWITCH_EMBED_PARENT', urlparse(app_url).hostname or 'localhost'),
        'CONTEST_LIST_LIMIT': 50,
    }

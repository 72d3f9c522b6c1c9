import os
import sys

from dotenv import load_dotenv

from icyproxy.errors import ConfigurationError

load_dotenv()

# Configuration
DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
USER_AGENT = os.getenv("USER_AGENT", "RadioCalico/1.0")

# Two separate budgets: the upstream fetch and the cache lifetime.
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "5"))
CACHE_TTL_MS = int(os.getenv("CACHE_TTL_MS", "10000"))

DEFAULT_STREAM_URL_FILE = "stream_URL.txt"


def log_debug(msg):
    if DEBUG:
        print(f"[DEBUG] {msg}", file=sys.stderr)


def read_stream_url():
    """
    Return the configured upstream URL.
    STREAM_URL wins, otherwise the plaintext file is read. OSError propagates.
    """
    env_url = os.getenv("STREAM_URL")
    if env_url:
        return env_url.strip()

    path = os.getenv("STREAM_URL_FILE", DEFAULT_STREAM_URL_FILE)
    with open(path, 'r', encoding='utf-8') as f:
        return f.read().strip()


def resolve_stream_url():
    try:
        url = read_stream_url()
    except OSError as e:
        raise ConfigurationError(f"Cannot read stream URL file: {e}") from e

    if not url:
        raise ConfigurationError("Stream URL is empty")
    return url

from urllib.parse import urlparse

from icyproxy.cache import MetadataCache
from icyproxy.config import FETCH_TIMEOUT, log_debug, resolve_stream_url
from icyproxy.errors import ConfigurationError
from icyproxy.icy import fetch_metadata, now_ms


class MetadataService:
    """
    Now-playing lookup for the configured stream: cache first, upstream on a miss.

    Raises ServiceError subclasses only; FetchError variants pass through
    unchanged since they already carry their HTTP status.
    """

    def __init__(self, cache=None, url_resolver=resolve_stream_url,
                 fetcher=fetch_metadata, timeout=FETCH_TIMEOUT, clock=now_ms):
        self.cache = cache if cache is not None else MetadataCache()
        self.url_resolver = url_resolver
        self.fetcher = fetcher
        self.timeout = timeout
        self.clock = clock

    def stream_url(self):
        url = self.url_resolver()
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigurationError(f"Unsupported stream URL: {url!r}")
        return url

    def refresh(self):
        url = self.stream_url()
        log_debug(f"Metadata cache miss, fetching from {url}")
        return self.fetcher(url, self.timeout)

    def get_metadata(self):
        return self.cache.get_or_refresh(self.clock(), self.refresh)

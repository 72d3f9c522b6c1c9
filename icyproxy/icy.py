"""
ICY (Icecast/Shoutcast) in-band metadata: one-shot fetch and StreamTitle decoding.

Protocol, as far as this module needs it:
1. Client requests metadata with the header ``Icy-MetaData: 1``
2. Server answers with ``icy-metaint: N`` (audio bytes between metadata blocks)
3. After N bytes of audio comes a length byte L, then L * 16 bytes of text
   such as ``StreamTitle='Artist - Song';StreamUrl='';`` padded with NULs.

Only the first block of a connection is read, then the connection is closed.
"""
import re
import threading
import time
from collections import namedtuple
from dataclasses import dataclass
from typing import Optional

import requests
import urllib3

from icyproxy.config import FETCH_TIMEOUT, USER_AGENT, log_debug
from icyproxy.errors import ConnectError, DecodeError, FetchTimeout, TransportError

FALLBACK_TITLE = "Radio Calico"
FALLBACK_ARTIST = "Live Stream"
UNKNOWN_TITLE = "Unknown Track"

STREAM_TITLE_RE = re.compile(r"StreamTitle='([^']*)'")
ARTIST_SEPARATOR = " - "
CHUNK_SIZE = 4096

DecodedTitle = namedtuple('DecodedTitle', ['full_title', 'artist', 'title'])


@dataclass(frozen=True)
class StreamMetadata:
    title: str
    artist: str
    timestamp: int
    full_title: Optional[str] = None

    def to_dict(self):
        data = {"title": self.title, "artist": self.artist}
        if self.full_title is not None:
            data["fullTitle"] = self.full_title
        data["timestamp"] = self.timestamp
        return data


def now_ms():
    return int(time.time() * 1000)


def fallback_metadata(timestamp=None):
    if timestamp is None:
        timestamp = now_ms()
    return StreamMetadata(title=FALLBACK_TITLE, artist=FALLBACK_ARTIST, timestamp=timestamp)


def decode_stream_title(block: bytes) -> Optional[DecodedTitle]:
    """
    Extract StreamTitle from a raw metadata block and split it into artist/title.

    The block is read as Latin-1 so every byte maps to exactly one character;
    ICY servers do not reliably send UTF-8. Returns None when the field is
    missing or empty.
    """
    text = block.decode('latin-1').rstrip('\x00')
    m = STREAM_TITLE_RE.search(text)
    if not m or not m.group(1):
        return None

    full_title = m.group(1)
    if ARTIST_SEPARATOR in full_title:
        # Only the first separator splits; "A - B - C" -> ("A", "B - C")
        artist, _, title = full_title.partition(ARTIST_SEPARATOR)
        return DecodedTitle(full_title, artist.strip(), title.strip())

    return DecodedTitle(full_title, '', full_title.strip())


def parse_metaint(value) -> int:
    """icy-metaint header as an int; anything unusable counts as 0."""
    if value is None:
        return 0
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


def read_metadata_block(read, metaint: int, deadline: float) -> bytes:
    """
    Read from the stream until the first metadata block is complete.

    ``read(n)`` returns at most ``n`` bytes, or b'' at end of stream. Each call
    asks only for the bytes still missing, so nothing past the block is read.
    Returns the raw block (empty when the length byte is 0).
    """
    buffer = bytearray()
    meta_length = None

    while True:
        if meta_length is None:
            missing = metaint + 1 - len(buffer)
        else:
            missing = metaint + 1 + meta_length - len(buffer)
        if missing <= 0:
            break

        if time.monotonic() >= deadline:
            raise FetchTimeout(f"Metadata block not received within budget ({len(buffer)} bytes read)")

        chunk = read(min(missing, CHUNK_SIZE))
        if not chunk:
            break
        buffer.extend(chunk)

        if meta_length is None and len(buffer) > metaint:
            meta_length = buffer[metaint] * 16

    if meta_length is None:
        raise DecodeError(f"Stream ended after {len(buffer)} bytes, expected length byte at offset {metaint}")

    start = metaint + 1
    block = bytes(buffer[start:start + meta_length])
    if len(block) < meta_length:
        raise DecodeError(f"Metadata block declares {meta_length} bytes, only {len(block)} received")
    return block


def close_in_background(r):
    threading.Thread(target=r.close, name='icy-metadata-close', daemon=True).start()


def read_body_within_deadline(r, metaint: int, deadline: float) -> bytes:
    """
    Run read_metadata_block on a reader thread and wait no longer than ``deadline``.

    A blocked socket read cannot be interrupted from here, so on timeout the
    reader is abandoned and ends once the caller has closed the response.
    """
    outcome = {}

    def reader():
        try:
            outcome['block'] = read_metadata_block(r.raw.read, metaint, deadline)
        except Exception as e:
            outcome['error'] = e

    r.raw.decode_content = False
    thread = threading.Thread(target=reader, name='icy-metadata-reader', daemon=True)
    thread.start()
    thread.join(max(0.0, deadline - time.monotonic()))

    if thread.is_alive():
        raise FetchTimeout("Metadata block not received within budget")
    if 'error' in outcome:
        raise outcome['error']
    if 'block' not in outcome:
        raise TransportError("Stream reader stopped without a result")
    return outcome['block']


def fetch_metadata(stream_url, timeout=FETCH_TIMEOUT) -> StreamMetadata:
    """
    Connect to the stream, read exactly one ICY metadata block and decode it.

    Missing icy-metaint, an empty block or a block without StreamTitle all give
    the fallback metadata. Network problems raise a FetchError subclass.
    """
    deadline = time.monotonic() + timeout
    headers = {'Icy-MetaData': '1', 'User-Agent': USER_AGENT}
    log_debug(f"Fetching ICY metadata from {stream_url}")

    try:
        r = requests.get(stream_url, headers=headers, stream=True, timeout=timeout)
    except requests.exceptions.Timeout as e:
        # ConnectTimeout is also a ConnectionError, so this must come first
        raise FetchTimeout(f"Request to {stream_url} timed out: {e}") from e
    except requests.exceptions.RequestException as e:
        raise ConnectError(f"Could not connect to {stream_url}: {e}") from e

    reader_stuck = False
    try:
        log_debug(f"Upstream answered {r.status_code}, icy-metaint={r.headers.get('icy-metaint')}")
        metaint = parse_metaint(r.headers.get('icy-metaint'))
        if metaint <= 0:
            log_debug("No ICY metadata offered, using fallback")
            return fallback_metadata()

        if time.monotonic() >= deadline:
            raise FetchTimeout(f"Request to {stream_url} exceeded {timeout}s before the body")

        try:
            block = read_body_within_deadline(r, metaint, deadline)
        except FetchTimeout:
            # The reader may still be blocked on the socket and would hold up r.close()
            reader_stuck = True
            raise
        except (urllib3.exceptions.HTTPError, requests.exceptions.RequestException, OSError) as e:
            # A per-read socket timeout surfaces as ReadTimeoutError
            if time.monotonic() >= deadline:
                raise FetchTimeout(f"Reading {stream_url} timed out: {e}") from e
            raise TransportError(f"Error while reading {stream_url}: {e}") from e
    finally:
        if reader_stuck:
            close_in_background(r)
        else:
            r.close()

    if not block:
        log_debug("Empty metadata block this cycle, using fallback")
        return fallback_metadata()

    decoded = decode_stream_title(block)
    if decoded is None:
        log_debug(f"No StreamTitle in metadata block: {block!r}")
        return fallback_metadata()

    log_debug(f"StreamTitle: {decoded.full_title}")
    return StreamMetadata(
        title=decoded.title or UNKNOWN_TITLE,
        artist=decoded.artist,
        timestamp=now_ms(),
        full_title=decoded.full_title,
    )

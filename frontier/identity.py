import hashlib

from frontier.utils.url_utils import canonicalize_url


IDENTITY_LENGTH = 32


def compute_identity(url: str) -> str:
    """Deduplication key of a URL: MD5 hex digest of its canonical form."""
    return hashlib.md5(canonicalize_url(url).encode("utf-8")).hexdigest()

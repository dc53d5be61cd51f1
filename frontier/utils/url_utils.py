import re
from urllib.parse import urldefrag, urlsplit, urlunsplit


def canonicalize_url(url: str) -> str:
    """Reduce a URL to the form its identity is computed from.

    The fragment is dropped, scheme and host are lower-cased, an empty path
    becomes ``/``, duplicate slashes collapse and a trailing slash on a
    non-root path is removed. Query strings are kept verbatim.
    """
    defragged, _ = urldefrag(url.strip())

    parts = urlsplit(defragged)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()

    path = re.sub(r"/{2,}", "/", parts.path or "/")
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    return urlunsplit((scheme, netloc, path, parts.query, ""))

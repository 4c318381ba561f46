from __future__ import annotations

from urllib.parse import parse_qs, urlparse


def _parse(url: str):
    value = url.strip()
    if not value.startswith(("http://", "https://", "//")):
        value = "http://" + value
    return urlparse(value)


def extract_domain(url: str, resolve_google_translate: bool = True) -> str:
    """Extract the host of a URL without ``www.``.

    Accepts bare hostnames and URLs without a scheme. Google Translate proxy
    links resolve to the translated page's host.
    """
    if not url:
        return url

    try:
        parsed = _parse(url)
        if (
            resolve_google_translate
            and parsed.hostname == "translate.google.com"
            and parsed.path.startswith("/translate")
        ):
            original = parse_qs(parsed.query).get("u")
            if original and original[0]:
                parsed = _parse(original[0])

        host = (parsed.hostname or "").lower().strip()
    except ValueError:
        return url

    if not host:
        return url
    if host.startswith("www."):
        host = host[4:]
    return host

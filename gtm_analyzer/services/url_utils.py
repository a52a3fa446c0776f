"""
URL Utilities for GTM Analyzer.

Provides:
- validate_target_url: gateway-side check that a submitted URL is absolute
- extract_hostname: lowercase hostname of a URL, or None
- normalize_script_src: absolute form of a script ``src`` attribute
- is_same_site: hostname equals or is a subdomain of a registrable domain
"""

from urllib.parse import urlparse

from gtm_analyzer.core.exceptions import ValidationError

ALLOWED_SCHEMES = {"http", "https"}


def validate_target_url(url: str | None) -> str:
    """Return the stripped URL if it is an absolute http(s) URL with a host.

    Raises:
        ValidationError: if the URL is missing or cannot be analyzed.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError("URL is required")
    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname
    except ValueError as e:
        raise ValidationError("Invalid URL", details={"url": candidate[:200]}) from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not hostname:
        raise ValidationError("Invalid URL", details={"url": candidate[:200]})
    return candidate


def extract_hostname(url: str) -> str | None:
    """Lowercase hostname of ``url``; None if it has none or cannot be parsed."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname or None


def normalize_script_src(src: str) -> str:
    """Make a protocol-relative ``src`` (``//host/path``) absolute over https."""
    src = src.strip()
    if src.startswith("//"):
        return "https:" + src
    return src


def is_same_site(hostname: str, main_domain: str) -> bool:
    """True if ``hostname`` is ``main_domain`` or one of its subdomains."""
    hostname = hostname.lower()
    main_domain = main_domain.lower()
    return hostname == main_domain or hostname.endswith("." + main_domain)

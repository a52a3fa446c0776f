"""
Registrable ("main") domain resolution using public-suffix rules.

    sub.example.co.uk -> example.co.uk
    www.example.com   -> example.com

Backed by tldextract with its bundled suffix-list snapshot, so resolving a
hostname never touches the network.
"""

import tldextract

# Empty suffix_list_urls keeps tldextract offline; private suffixes
# (github.io, blogspot.com, ...) count as public suffixes.
_extractor = tldextract.TLDExtract(
    suffix_list_urls=(),
    include_psl_private_domains=True,
)


def resolve_main_domain(hostname: str) -> str | None:
    """
    Return the registrable domain for ``hostname``.

    Returns None when no registrable domain exists: bare IP addresses,
    single-label hosts such as ``localhost`` and hosts whose suffix is not
    on the public suffix list.
    """
    if not hostname:
        return None

    host = hostname.strip().rstrip(".").lower()
    parts = _extractor(host)
    if not parts.domain or not parts.suffix:
        return None
    return f"{parts.domain}.{parts.suffix}"


def main_domain_or_host(hostname: str) -> str:
    """Registrable domain of ``hostname``, falling back to the hostname itself."""
    return resolve_main_domain(hostname) or hostname.lower()

"""
GTM Analyzer.

Detects whether a web page embeds a Google Tag Manager container and whether
that container is served through a first-party ("proxified") domain.
"""

__version__ = "0.1.0"

"""
GTM Analyzer.

Turns fetched HTML into an AnalysisResult:

1. Resolve the page hostname to its registrable domain
2. Collect every ``<script>`` element in document order
3. Run the detectors by priority; the first match decides the result

Best-effort pattern matching over the initial HTML only; scripts are never
executed.
"""

from collections.abc import Sequence

import structlog
from bs4 import BeautifulSoup

from gtm_analyzer.core.exceptions import AnalysisError
from gtm_analyzer.core.models import AnalysisResult
from gtm_analyzer.services.detectors import (
    DetectionContext,
    DetectionMatch,
    Detector,
    ScriptTag,
    default_detectors,
)
from gtm_analyzer.services.domain_resolver import main_domain_or_host
from gtm_analyzer.services.url_utils import extract_hostname

logger = structlog.get_logger()


def extract_scripts(html: str, parser: str = "lxml") -> list[ScriptTag]:
    """Return the page's script elements in document order."""
    soup = BeautifulSoup(html or "", parser)
    scripts = []
    for el in soup.find_all("script"):
        scripts.append(ScriptTag(src=el.get("src") or "", inline=str(el.string or "")))
    return scripts


class Analyzer:
    """Run the ordered detectors against one page."""

    def __init__(self, detectors: Sequence[Detector] | None = None, parser: str = "lxml"):
        self.detectors = list(detectors) if detectors is not None else default_detectors()
        self.parser = parser
        self.log = logger.bind(component="Analyzer")

    def build_context(self, url: str) -> DetectionContext:
        hostname = extract_hostname(url)
        if not hostname:
            raise AnalysisError("URL has no hostname", details={"url": url[:200]})
        return DetectionContext(
            url=url,
            hostname=hostname,
            main_domain=main_domain_or_host(hostname),
        )

    def analyze(self, html: str, url: str) -> AnalysisResult:
        """
        Detect a GTM container on the page at ``url``.

        Args:
            html: Raw page HTML
            url: URL the HTML was fetched from

        Returns:
            AnalysisResult; ``is_gtm_found`` is False when no detector matched

        Raises:
            AnalysisError: if the URL has no hostname or the HTML cannot be parsed
        """
        context = self.build_context(url)

        try:
            scripts = extract_scripts(html, self.parser)
        except Exception as e:
            raise AnalysisError(f"Could not parse HTML: {e}", details={"url": url[:200]}) from e

        match = self.run_detectors(scripts, context)
        if match is None:
            self.log.debug("No GTM signature", url=url[:200], scripts=len(scripts))
            return AnalysisResult(url=url)

        self.log.debug(
            "GTM signature found",
            url=url[:200],
            detector=match.detector,
            script_index=match.script_index,
            gtm_domain=match.gtm_domain,
            is_proxified=match.is_proxified,
        )
        return AnalysisResult(
            url=url,
            gtm_domain=match.gtm_domain,
            is_proxified=match.is_proxified,
            is_gtm_found=True,
        )

    def run_detectors(
        self,
        scripts: Sequence[ScriptTag],
        context: DetectionContext,
    ) -> DetectionMatch | None:
        for detector in self.detectors:
            match = detector.detect(scripts, context)
            if match is not None:
                return match
        return None

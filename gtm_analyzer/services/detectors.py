"""
GTM detection strategies.

Each detector looks at the page's scripts in document order and either
reports a match or passes. The analyzer runs detectors by priority and stops
at the first hit, so strong signals (a container id in a script URL) always
beat weaker ones (the conversion-tag fallback). Signals from different
scripts are never merged.

Adding a heuristic means writing a Detector and putting it in the list.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from gtm_analyzer.services.url_utils import extract_hostname, is_same_site, normalize_script_src

logger = structlog.get_logger()


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ScriptTag:
    """A ``<script>`` element reduced to what the detectors read."""
    src: str = ""
    inline: str = ""

    @property
    def combined(self) -> str:
        return self.src + self.inline


@dataclass(frozen=True)
class DetectionContext:
    """Page facts shared by all detectors."""
    url: str
    hostname: str
    main_domain: str


@dataclass(frozen=True)
class DetectionMatch:
    """A conclusive hit from one detector."""
    detector: str
    script_index: int
    gtm_domain: str = ""
    is_proxified: bool = False


# =============================================================================
# Detectors
# =============================================================================


class Detector(ABC):
    """Base class for a detection pass over the page scripts."""

    name: str = "base"

    def __init__(self):
        self.log = logger.bind(component="Detector", detector=self.name)

    @abstractmethod
    def detect(
        self,
        scripts: Sequence[ScriptTag],
        context: DetectionContext,
    ) -> DetectionMatch | None:
        """Scan ``scripts`` in order; return the first match or None."""
        raise NotImplementedError


class ContainerTagDetector(Detector):
    """
    Explicit container tag.

    Per script: a ``src`` carrying ``?id=GTM-`` is judged by the host it
    loads from; otherwise an inline ``GTM-XXXX`` id is judged by whether the
    snippet mentions the site's own domain.
    """

    name = "container_tag"

    SRC_MARKER = "?id=GTM-"
    INLINE_ID_RE = re.compile(r"GTM-[A-Z0-9]+")
    GOOGLE_MARKER = "google"

    def detect(
        self,
        scripts: Sequence[ScriptTag],
        context: DetectionContext,
    ) -> DetectionMatch | None:
        for index, script in enumerate(scripts):
            if self.SRC_MARKER in script.src:
                match = self._match_src(index, script.src, context)
                if match is not None:
                    return match
                continue

            if self.INLINE_ID_RE.search(script.inline):
                return self._match_inline(index, script.inline, context)

        return None

    def _match_src(
        self,
        index: int,
        src: str,
        context: DetectionContext,
    ) -> DetectionMatch | None:
        gtm_domain = extract_hostname(normalize_script_src(src))
        if not gtm_domain:
            # Unparseable src: this script does not count
            self.log.debug("Skipping unparseable container src", src=src[:200])
            return None

        is_proxified = (
            self.GOOGLE_MARKER not in gtm_domain
            and is_same_site(gtm_domain, context.main_domain)
        )
        return DetectionMatch(
            detector=self.name,
            script_index=index,
            gtm_domain=gtm_domain,
            is_proxified=is_proxified,
        )

    def _match_inline(
        self,
        index: int,
        inline: str,
        context: DetectionContext,
    ) -> DetectionMatch:
        domain_re = re.compile(r"\b" + re.escape(context.main_domain), re.IGNORECASE)
        if domain_re.search(inline):
            return DetectionMatch(
                detector=self.name,
                script_index=index,
                gtm_domain=context.hostname,
                is_proxified=True,
            )
        return DetectionMatch(detector=self.name, script_index=index)


class ConversionTagDetector(Detector):
    """Fallback: a Google Ads conversion signature (``?aw=``) in src or body."""

    name = "conversion_tag"

    MARKER = "?aw="

    def detect(
        self,
        scripts: Sequence[ScriptTag],
        context: DetectionContext,
    ) -> DetectionMatch | None:
        for index, script in enumerate(scripts):
            text = script.combined
            if self.MARKER not in text:
                continue
            if context.main_domain in text:
                return DetectionMatch(
                    detector=self.name,
                    script_index=index,
                    gtm_domain=context.hostname,
                    is_proxified=True,
                )
            return DetectionMatch(detector=self.name, script_index=index)

        return None


def default_detectors() -> list[Detector]:
    """Detectors in priority order."""
    return [ContainerTagDetector(), ConversionTagDetector()]

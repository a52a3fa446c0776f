"""
Services layer for GTM Analyzer.

STANDALONE SERVICES:
- domain_resolver: hostname → registrable domain (public suffix list)
- fetcher: bounded-time page retrieval
- detectors: ordered GTM detection strategies
- analyzer: HTML → AnalysisResult using the detectors
- job_store: in-memory job table
- url_utils: URL validation and normalization helpers

ARCHITECTURE:
1. Gateway (api/) validates the URL, creates a pending job, submits it
2. Scheduler (worker/) drains the queue one job at a time: fetch → analyze
3. The outcome is written to the JobStore, where the gateway polls it
"""

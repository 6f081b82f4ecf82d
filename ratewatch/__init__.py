"""RateWatch core source package.

This package contains the mortgage rate acquisition pipeline:
- models: Canonical rate model and institution catalog loading
- validator: Loan parameter validation
- fetcher: Static HTML retrieval over httpx
- browser / dynamic: Playwright-driven form filling and extraction
- extractors / rate_tables / normalizer: Per-institution extraction and naming
- registry: Institution-to-strategy bundles
- aggregator / cache: Concurrent fan-out and snapshot freshness
- history: Canonical-source rate history
- logger: Structured JSON logging configuration
- exceptions: Custom exception hierarchy
"""

__version__ = "1.0.0"

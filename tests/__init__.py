"""Test suite for RateWatch.

This package contains hermetic tests following the pytest framework.
Tests are structured to mirror the ratewatch/ package modules for discoverability.

Testing Philosophy:
    - Use pytest-mock and httpx.MockTransport for network isolation
    - Focus coverage on fan-out aggregation, scripted forms and extraction
    - Avoid external dependencies - all I/O should be mocked
"""

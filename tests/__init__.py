"""DQA test suite.

Shared fixtures live in conftest.py:
- make_finding: build a Finding with realistic defaults
- write_results_file: write findings to a results CSV
- tracker: in-memory tracker client with failure injection
"""

"""Pytest configuration."""

import os


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: mark test as requiring a Stockfish binary (skipped when none is installed)"
    )


# Keep the API on the heuristic evaluator unless a test opts in
os.environ.setdefault("MIMIC_ENGINE", "0")

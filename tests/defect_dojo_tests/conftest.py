# Common pytest fixtures for defect_dojo tests.
# We ensure the project root (directory that contains the `scan_reporter/` package) is in sys.path.

import os
import sys
import pytest

PROJECT_ROOT = os.getenv("PROJECT_ROOT") or os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

@pytest.fixture()
def dojo_base_url():
    return "https://dojo.test"

@pytest.fixture()
def dojo_token(monkeypatch):
    # Ensure code paths that read DEFECTDOJO_TOKEN do not fail
    monkeypatch.setenv("DEFECTDOJO_TOKEN", "test-token")
    return "test-token"

@pytest.fixture()
def clean_env(monkeypatch):
    # Keep ambient CI variables out of config loading tests
    for name in ("DEFECTDOJO_URL", "DEFECTDOJO_VERIFY_SSL", "DEFECTDOJO_TIMEOUT", "DEFECTDOJO_PRODUCT",
                 "DEFECTDOJO_ENGAGEMENT", "DEFECTDOJO_REPORT_DIR", "DEFECTDOJO_MIN_SEVERITY", "BUILD_NUMBER"):
        monkeypatch.delenv(name, raising=False)

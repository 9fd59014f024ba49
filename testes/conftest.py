import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest


@pytest.fixture(autouse=True)
def isolated_reports(tmp_path, monkeypatch):
    # log files and reports are written relative to the working directory
    monkeypatch.chdir(tmp_path)
    yield tmp_path

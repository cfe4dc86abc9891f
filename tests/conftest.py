import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
  sys.path.insert(0, str(PROJECT_ROOT))

import util  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_log_queue():
  util.drain_log_messages()
  yield
  util.drain_log_messages()

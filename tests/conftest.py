"""Pytest configuration for pagegraph."""
import pytest

from pagegraph.base.config import set_config

_ENV_VARS = (
    "PAGEGRAPH_DEBUG",
    "PAGEGRAPH_LOG_LEVEL",
    "PAGEGRAPH_FRAME_FILE_PATTERN",
    "PAGEGRAPH_MERGE_FRAMES",
    "PAGEGRAPH_SUFFIX_LIST_URLS",
    "PAGEGRAPH_MAX_WORKERS",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    # every test starts from the defaults, whatever the shell exported
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    set_config(None)
    yield
    set_config(None)

import logging

import pytest

from haproxy_ecs_discovery.logging_config import JSONFormatter, TextFormatter


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo configure_logging() so later tests keep pytest's capture and default level."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, (JSONFormatter, TextFormatter)):
            root.removeHandler(handler)
    root.setLevel(level)

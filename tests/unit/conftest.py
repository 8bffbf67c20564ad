import logging

import pytest


@pytest.fixture(autouse=True)
def _recsys_root_logger():
    # Materialize the "recsys" parent logger before a test resolves stage
    # loggers, so `recsys.<component>` is attached to it rather than to root.
    return logging.getLogger("recsys")

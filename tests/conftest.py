import pytest

import cob


@pytest.fixture
def cache():
    """Empty AssetCache with default limits."""
    return cob.AssetCache()

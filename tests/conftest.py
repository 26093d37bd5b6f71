# pytest configuration for hidrive_api tests
import sys
from pathlib import Path

import pytest

# Ensure the package root is in sys.path for proper imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))


@pytest.fixture
def find_requests():
    """Return a helper listing (url, call) pairs aioresponses recorded for a method and URL.

    ``base_url`` is compared without its query string.
    """

    def _find(mocked, method, base_url):
        found = []
        for (meth, url), calls in mocked.requests.items():
            if meth == method and str(url.with_query(None)) == base_url:
                found.extend((url, call) for call in calls)
        return found

    return _find

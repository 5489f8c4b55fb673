# Make `import market_stream` / `import ingestion` / `import tests.helpers` work without an editable install.
import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(__file__))
SRC = os.path.join(ROOT, "src")

for path in (SRC, ROOT):
    if path not in sys.path:
        sys.path.insert(0, path)

from tests.helpers.factories import make_snapshot  # noqa: E402


@pytest.fixture
def sorted_by_key():
    return [
        make_snapshot("AAPL", "Apple Inc", 150),
        make_snapshot("AMZN", "Amazon.com", 130),
        make_snapshot("GOOGL", "Alphabet Inc", 140),
        make_snapshot("MSFT", "Microsoft", 380),
        make_snapshot("TSLA", "Tesla Inc", 250),
    ]

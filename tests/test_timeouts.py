import asyncio
import time

import pytest

from docstore.errors import OperationTimeoutError
from docstore.timeouts import with_timeout


def test_with_timeout_returns_result():
    assert asyncio.run(with_timeout(lambda a, b=0: a + b, 1, b=2, seconds=1)) == 3


def test_with_timeout_raises_after_ceiling():
    with pytest.raises(OperationTimeoutError) as exc:
        asyncio.run(with_timeout(time.sleep, 0.5, seconds=0.05))
    assert isinstance(exc.value, TimeoutError)
    assert "0.05s" in str(exc.value)

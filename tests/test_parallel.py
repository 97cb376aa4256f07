"""
Tests for execution backends.
"""

import pytest

from bcbio_single_cell.errors import ValidationError
from bcbio_single_cell.parallel import PoolBackend, SerialBackend, get_backend


def square(x):
    return x * x


def fail_on_three(x):
    if x == 3:
        raise RuntimeError("boom")
    return x


class TestBackends:

    def test_serial_preserves_order(self):
        assert SerialBackend().map([3, 1, 2], square) == [9, 1, 4]

    @pytest.mark.parametrize("kind", ['thread', 'process'])
    def test_pool_preserves_order(self, kind):
        assert PoolBackend(3, kind=kind).map(list(range(10)), square) == [x * x for x in range(10)]

    def test_pool_empty_input(self):
        assert PoolBackend(2, kind='thread').map([], square) == []

    def test_pool_propagates_worker_errors(self):
        with pytest.raises(RuntimeError, match="boom"):
            PoolBackend(2, kind='thread').map([1, 2, 3, 4], fail_on_three)

    @pytest.mark.parametrize("workers", [0, -1, 1.5, '2'])
    def test_invalid_workers(self, workers):
        with pytest.raises(ValidationError, match="workers"):
            PoolBackend(workers)

    def test_invalid_kind(self):
        with pytest.raises(ValidationError, match="kind"):
            PoolBackend(2, kind='cluster')


class TestGetBackend:

    @pytest.mark.parametrize("workers", [None, 0, 1])
    def test_serial(self, workers):
        assert isinstance(get_backend(workers), SerialBackend)

    def test_pool(self):
        backend = get_backend(4, kind='thread')
        assert isinstance(backend, PoolBackend)
        assert backend.workers == 4
        assert repr(backend) == "PoolBackend(workers=4, kind='thread')"

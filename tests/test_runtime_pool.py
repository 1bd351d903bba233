import logging
import threading

import pytest

from tplc.runtime import DEFAULT_POOL_SIZE, HandlerPool, PageConfig


class Handler:
    released = 0

    def release(self):
        Handler.released += 1


@pytest.fixture(autouse=True)
def _reset():
    Handler.released = 0


def test_get_creates_then_reuses():
    pool = HandlerPool(2)
    first = pool.get(Handler)
    assert isinstance(first, Handler)
    pool.reuse(first)
    assert len(pool) == 1
    assert pool.get(Handler) is first
    assert len(pool) == 0


def test_overflow_is_released():
    pool = HandlerPool(1)
    a, b = pool.get(Handler), pool.get(Handler)
    pool.reuse(a)
    pool.reuse(b)
    assert len(pool) == 1
    assert Handler.released == 1


def test_zero_size_never_keeps_handlers():
    pool = HandlerPool(0)
    pool.reuse(pool.get(Handler))
    assert len(pool) == 0
    assert Handler.released == 1


def test_negative_size():
    with pytest.raises(ValueError):
        HandlerPool(-1)


def test_release_empties_the_pool():
    pool = HandlerPool(3)
    for h in [pool.get(Handler) for _ in range(3)]:
        pool.reuse(h)
    pool.release()
    assert len(pool) == 0
    assert Handler.released == 3


class TestForConfig:

    def test_default(self):
        assert HandlerPool.for_config(None).max_size == DEFAULT_POOL_SIZE
        assert HandlerPool.for_config(PageConfig()).max_size == DEFAULT_POOL_SIZE

    def test_init_parameter(self):
        assert HandlerPool.for_config(PageConfig({"tag_pool_max_size": "2"})).max_size == 2

    def test_negative_parameter_is_clamped(self):
        assert HandlerPool.for_config(PageConfig({"tag_pool_max_size": "-4"})).max_size == 0

    def test_invalid_parameter_is_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tplc.runtime.pool"):
            pool = HandlerPool.for_config(PageConfig({"tag_pool_max_size": "many"}))
        assert pool.max_size == DEFAULT_POOL_SIZE
        assert "tag_pool_max_size" in caplog.text


def test_concurrent_use_never_exceeds_the_limit():
    pool = HandlerPool(4)

    def work():
        for _ in range(200):
            pool.reuse(pool.get(Handler))

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(pool) <= 4

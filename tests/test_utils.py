"""Tests for the session cache, temp files and housekeeping."""

import os

from utils import Housekeeper, TempFiles, TTLCache, session_key


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTTLCache:

    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(300, clock=clock)
        cache.set('U1:C1', {'amount': 1500})

        clock.now += 299
        assert cache.get('U1:C1') == {'amount': 1500}
        assert 'U1:C1' in cache

        clock.now += 1
        assert cache.get('U1:C1') is None
        assert len(cache) == 0

    def test_pop(self):
        clock = FakeClock()
        cache = TTLCache(60, clock=clock)
        cache.set('a', 1)
        assert cache.pop('a') == 1
        assert cache.pop('a') is None

        cache.set('b', 2)
        clock.now += 61
        assert cache.pop('b') is None

    def test_prune(self):
        clock = FakeClock()
        cache = TTLCache(60, clock=clock)
        cache.set('old', 1)
        clock.now += 30
        cache.set('new', 2)
        clock.now += 40

        assert cache.prune() == 1
        assert len(cache) == 1
        assert cache.get('new') == 2

    def test_delete(self):
        cache = TTLCache(60)
        cache.set('a', 1)
        cache.delete('a')
        cache.delete('missing')
        assert 'a' not in cache


def test_session_key():
    assert session_key('U1', 'C1') == 'U1:C1'


class TestTempFiles:

    def test_save_and_delete(self, tmp_path):
        temp = TempFiles(str(tmp_path / 'scratch'))
        path = temp.save(b'%PDF', suffix='.pdf')

        assert path.endswith('.pdf')
        with open(path, 'rb') as f:
            assert f.read() == b'%PDF'

        temp.delete(path)
        assert not os.path.exists(path)
        # deleting twice only logs
        temp.delete(path)

    def test_cleanup_removes_old_files(self, tmp_path):
        clock = FakeClock(now=10_000.0)
        temp = TempFiles(str(tmp_path), clock=clock)
        old = temp.save(b'old')
        fresh = temp.save(b'fresh')
        os.utime(old, (clock.now - 7200, clock.now - 7200))
        os.utime(fresh, (clock.now - 60, clock.now - 60))
        os.makedirs(tmp_path / 'subdir')

        assert temp.cleanup(max_age=3600) == [old]
        assert os.path.exists(fresh)
        assert os.path.isdir(tmp_path / 'subdir')


class TestHousekeeper:

    def test_failing_task_does_not_stop_others(self):
        ran = []

        def broken():
            raise RuntimeError("boom")

        keeper = Housekeeper(60, [broken, lambda: ran.append('ok')])
        keeper.run_once()

        assert ran == ['ok']

    def test_start_and_stop(self):
        keeper = Housekeeper(3600, [])
        keeper.start()
        assert keeper._timer is not None
        keeper.stop()
        assert keeper._timer is None

import threading

import redis

from utils import cache as cache_mod
from utils.cache import RedisTTLCache, TTLCache, build_cache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeRedis:
    """Just the commands RedisTTLCache issues; expiry is ignored unless pttl is asked"""

    def __init__(self):
        self.data = {}
        self.expiry_ms = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, px=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        if px is not None:
            self.expiry_ms[key] = px
        else:
            self.expiry_ms.pop(key, None)
        return True

    def exists(self, key):
        return int(key in self.data)

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
            self.expiry_ms.pop(key, None)

    def pttl(self, key):
        if key not in self.data:
            return -2
        return self.expiry_ms.get(key, -1)

    def scan_iter(self, match=None):
        prefix = (match or '*').rstrip('*')
        return [k for k in list(self.data) if k.startswith(prefix)]

    def transaction(self, func, *watches, value_from_callable=False):
        client = self

        class Pipe:
            def get(self, key):
                return client.get(key)

            def multi(self):
                pass

            def set(self, key, value, px=None):
                client.set(key, value, px=px)

        result = func(Pipe())
        return result if value_from_callable else []


def test_set_if_absent_claims_once_until_expiry():
    clock = FakeClock()
    cache = TTLCache(clock=clock)

    assert cache.set_if_absent('alert_throttle:x', True, ttl=60) is True
    assert cache.set_if_absent('alert_throttle:x', True, ttl=60) is False
    clock.now += 61
    assert cache.set_if_absent('alert_throttle:x', True, ttl=60) is True


def test_set_if_absent_has_one_winner_across_threads():
    cache = TTLCache()
    barrier = threading.Barrier(8)
    wins = []

    def claim():
        barrier.wait()
        wins.append(cache.set_if_absent('claim', True, ttl=30))

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert wins.count(True) == 1


def test_update_and_ttl():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.update('failures:a', lambda events: events + [1], default=[], ttl=100)
    cache.update('failures:a', lambda events: events + [2], default=[], ttl=100)

    assert cache.get('failures:a') == [1, 2]
    assert cache.ttl('failures:a') == 100
    clock.now += 100
    assert cache.has('failures:a') is False


def test_redis_cache_round_trips_values_under_prefix():
    client = FakeRedis()
    cache = RedisTTLCache(client, key_prefix='t:')

    cache.set('credential_health:0', {'reason': 'CAPTCHA detected'}, ttl=1800)
    assert cache.get('credential_health:0') == {'reason': 'CAPTCHA detected'}
    assert cache.has('credential_health:0')
    assert cache.ttl('credential_health:0') == 1800.0
    assert 't:credential_health:0' in client.data

    cache.set('route_session:brightdata', 'abc')
    assert cache.ttl('route_session:brightdata') is None
    assert cache.get('missing', 'fallback') == 'fallback'


def test_redis_cache_claim_update_and_clear():
    client = FakeRedis()
    cache = RedisTTLCache(client, key_prefix='t:')

    assert cache.set_if_absent('alert_throttle:a', True, ttl=60) is True
    assert cache.set_if_absent('alert_throttle:a', True, ttl=60) is False

    assert cache.update('failures:a', lambda events: events + ['x'], default=[]) == ['x']
    assert cache.update('failures:a', lambda events: events + ['y'], default=[]) == ['x', 'y']

    client.data['other:key'] = b'1'
    cache.clear()
    assert list(client.data) == ['other:key']


def test_build_cache_without_url_is_in_process():
    assert isinstance(build_cache(redis_url=''), TTLCache)


def test_build_cache_unreachable_redis_falls_back(monkeypatch):
    class DownClient:
        def ping(self):
            raise redis.ConnectionError("connection refused")

    monkeypatch.setattr(cache_mod.redis, 'from_url', lambda url: DownClient())
    assert isinstance(build_cache(redis_url='redis://localhost:6399/0'), TTLCache)


def test_build_cache_uses_redis_when_reachable(monkeypatch):
    client = FakeRedis()
    client.ping = lambda: True
    monkeypatch.setattr(cache_mod.redis, 'from_url', lambda url: client)

    cache = build_cache(redis_url='redis://cache:6379/0')
    assert isinstance(cache, RedisTTLCache)
    cache.set('k', 1)
    assert cache.get('k') == 1

import threading

import pytest

from data.models import Credential
from ingestion.credential_pool import CredentialPool
from ingestion.errors import AdapterUnavailableError


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_pool(n=3, clock=None):
    clock = clock or FakeClock()
    creds = [Credential(index=i, payload=f"session-id=s{i}; ubid-main=u{i}") for i in range(n)]
    return CredentialPool(creds, clock=clock), clock


def test_round_robin_order():
    pool, _ = make_pool(3)
    assert [pool.next().index for _ in range(4)] == [0, 1, 2, 0]


def test_unhealthy_credential_is_skipped_until_cooldown_expires():
    pool, clock = make_pool(3)
    pool.mark_unhealthy(1, "CAPTCHA detected", cooldown_minutes=30)

    assert [pool.next().index for _ in range(4)] == [0, 2, 0, 2]

    clock.advance(30 * 60 + 1)
    seen = {pool.next().index for _ in range(3)}
    assert 1 in seen


def test_degraded_mode_returns_next_in_line_when_all_cooling(caplog):
    pool, _ = make_pool(2)
    pool.mark_unhealthy(0, "blocked")
    pool.mark_unhealthy(1, "blocked")

    with caplog.at_level("WARNING"):
        first = pool.next()
        second = pool.next()

    assert (first.index, second.index) == (0, 1)
    assert "cooling down" in caplog.text


def test_empty_pool_raises_unavailable():
    pool = CredentialPool([])
    with pytest.raises(AdapterUnavailableError):
        pool.next()


def test_health_snapshot_reports_cooldowns():
    pool, _ = make_pool(2)
    pool.mark_unhealthy(0, "Login redirect detected", cooldown_minutes=60)

    snapshot = pool.health_snapshot()
    assert snapshot[0]['healthy'] is False
    assert snapshot[0]['last_reason'] == "Login redirect detected"
    assert 0 < snapshot[0]['cooldown_remaining_seconds'] <= 3600
    assert snapshot[1]['healthy'] is True
    assert snapshot[0]['next_in_line'] is True

    pool.reset_all()
    assert all(s['healthy'] for s in pool.health_snapshot())


def test_from_env_reads_numbered_cookies(monkeypatch):
    monkeypatch.setenv('AMAZON_COOKIES_1', 'session-id=a')
    monkeypatch.setenv('AMAZON_COOKIES_3', 'session-id=c')
    monkeypatch.delenv('AMAZON_COOKIES_2', raising=False)

    pool = CredentialPool.from_env()
    assert len(pool) == 2
    assert pool.next().to_cookie_dict() == {'session-id': 'a'}


def test_unhealthy_credential_never_returned_to_concurrent_callers():
    pool, _ = make_pool(4)
    pool.mark_unhealthy(2, "CAPTCHA detected")
    barrier = threading.Barrier(8)
    picked = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        local = [pool.next().index for _ in range(200)]
        with lock:
            picked.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(picked) == 1600
    assert set(picked) == {0, 1, 3}
    # the shared cursor keeps the rotation even across threads
    assert sorted(picked.count(i) for i in (0, 1, 3)) == [533, 533, 534]

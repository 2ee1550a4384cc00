"""
Egress route selection across self-hosted proxies and proxy providers

Custom proxies (CUSTOM_PROXIES) win whenever one is healthy; otherwise the
best-scoring configured provider is used, and a direct route is the last
resort. Provider session ids are cached and rotated after failures.
"""

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config.settings import SETTINGS
from data.models import Route, RouteType
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "route_session:"

# name -> (type, reliability, cost per GB, session rotation, endpoint env, user env, pass env)
PROVIDER_TABLE = {
    'brightdata': (RouteType.RESIDENTIAL, 0.95, 15.0, True,
                   'BRIGHTDATA_PROXY_ENDPOINT', 'BRIGHTDATA_PROXY_USERNAME', 'BRIGHTDATA_PROXY_PASSWORD'),
    'oxylabs': (RouteType.RESIDENTIAL, 0.92, 12.0, True,
                'OXYLABS_PROXY_ENDPOINT', 'OXYLABS_USERNAME', 'OXYLABS_PASSWORD'),
    'smartproxy': (RouteType.RESIDENTIAL, 0.88, 8.5, True,
                   'SMARTPROXY_ENDPOINT', 'SMARTPROXY_USERNAME', 'SMARTPROXY_PASSWORD'),
    'proxymesh': (RouteType.DATACENTER, 0.85, 2.0, False,
                  'PROXYMESH_ENDPOINT', 'PROXYMESH_USERNAME', 'PROXYMESH_PASSWORD'),
}

PROVIDER_DEFAULT_ENDPOINTS = {
    'brightdata': 'brd.superproxy.io:22225',
    'oxylabs': 'pr.oxylabs.io:7777',
    'smartproxy': 'gate.smartproxy.com:7000',
    'proxymesh': 'us-wa.proxymesh.com:31280',
}


@dataclass
class _CustomRouteStats:
    success_count: int = 0
    failure_count: int = 0
    last_used: float = 0.0
    last_error: str = ""

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.success_count / total if total else 1.0


def parse_custom_proxies(raw: str) -> List[Route]:
    """Parse 'ip:port:user:pass[:country],...' into custom routes"""
    routes = []
    for i, entry in enumerate(p.strip() for p in (raw or '').split(',')):
        if not entry:
            continue
        parts = entry.split(':')
        if len(parts) < 4:
            logger.warning(f"Ignoring malformed custom proxy entry #{i + 1}")
            continue
        host, port, user, password = parts[:4]
        country = parts[4] if len(parts) > 4 else ''
        routes.append(Route(
            name=f"custom_{i + 1}",
            route_type=RouteType.CUSTOM,
            endpoint=f"{host}:{port}",
            username=user,
            password=password,
            country=country,
            reliability=0.9,
            cost_per_gb=0.0,
        ))
    return routes


class RouteSelector:
    """Chooses one outbound route per adapter HTTP client"""

    def __init__(self, providers: Optional[List[Route]] = None, custom_routes: Optional[List[Route]] = None,
                 cache: Optional[TTLCache] = None, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._cache = cache if cache is not None else TTLCache(clock=clock)
        self.providers = list(providers or [])
        self.custom_routes = list(custom_routes or [])
        self._stats: Dict[str, _CustomRouteStats] = {r.name: _CustomRouteStats() for r in self.custom_routes}
        self._lock = threading.Lock()
        logger.info(f"Route selector initialized: {len(self.custom_routes)} custom, "
                    f"{len(self.providers)} providers")

    @classmethod
    def from_env(cls, cache: Optional[TTLCache] = None) -> 'RouteSelector':
        providers = []
        for name, (route_type, reliability, cost, rotation, endpoint_env, user_env, pass_env) in PROVIDER_TABLE.items():
            username = os.getenv(user_env, '')
            password = os.getenv(pass_env, '')
            if not (username and password):
                continue
            providers.append(Route(
                name=name,
                route_type=route_type,
                endpoint=os.getenv(endpoint_env, PROVIDER_DEFAULT_ENDPOINTS[name]),
                username=username,
                password=password,
                reliability=reliability,
                cost_per_gb=cost,
                supports_session_rotation=rotation,
            ))
        custom = parse_custom_proxies(os.getenv('CUSTOM_PROXIES', ''))
        return cls(providers=providers, custom_routes=custom, cache=cache)

    def select(self) -> Route:
        """Pick the best route right now; never returns None"""
        custom = self._select_custom()
        if custom is not None:
            return custom

        if self.providers:
            best = max(self.providers, key=lambda r: r.score)
            if best.supports_session_rotation:
                best.session_id = self._session_id(best.name)
            logger.debug(f"Selected provider route {best.name} (score {best.score:.3f})")
            return best

        return Route(name='direct', route_type=RouteType.DIRECT)

    def _select_custom(self) -> Optional[Route]:
        now = self._clock()
        memory = SETTINGS['route_failure_memory_seconds']
        max_failures = SETTINGS['route_max_failures']

        with self._lock:
            eligible = []
            for route in self.custom_routes:
                stats = self._stats[route.name]
                if stats.failure_count > max_failures and now - stats.last_used < memory:
                    continue
                eligible.append(route)
            if not eligible:
                return None

            eligible.sort(key=lambda r: (-self._stats[r.name].success_rate, self._stats[r.name].last_used))
            chosen = eligible[0]
            self._stats[chosen.name].last_used = now
            return chosen

    def _session_id(self, provider: str) -> str:
        key = f"{SESSION_KEY_PREFIX}{provider}"
        session_id = self._cache.get(key)
        if session_id is None:
            session_id = self.rotate_session(provider)
        return session_id

    def rotate_session(self, provider: str) -> str:
        session_id = f"review_scrape_{int(self._clock())}_{uuid.uuid4().hex[:8]}"
        self._cache.set(f"{SESSION_KEY_PREFIX}{provider}", session_id,
                        ttl=SETTINGS['route_session_ttl_seconds'])
        for route in self.providers:
            if route.name == provider:
                route.session_id = session_id
        logger.info(f"Rotated proxy session for {provider}")
        return session_id

    def report_success(self, route: Route) -> None:
        if route.route_type is RouteType.CUSTOM:
            with self._lock:
                stats = self._stats.setdefault(route.name, _CustomRouteStats())
                stats.success_count += 1
                stats.last_used = self._clock()

    def report_failure(self, route: Route, error: str = "") -> None:
        logger.warning(f"Route {route.name} failed: {error}")
        if route.route_type is RouteType.CUSTOM:
            with self._lock:
                stats = self._stats.setdefault(route.name, _CustomRouteStats())
                stats.failure_count += 1
                stats.last_used = self._clock()
                stats.last_error = error
        elif route.supports_session_rotation:
            self.rotate_session(route.name)

    def stats(self) -> Dict[str, Any]:
        """Snapshot for operational dashboards"""
        with self._lock:
            custom = {
                name: {
                    'success_count': s.success_count,
                    'failure_count': s.failure_count,
                    'success_rate': round(s.success_rate, 3),
                    'last_used': s.last_used,
                    'last_error': s.last_error,
                }
                for name, s in self._stats.items()
            }
        return {
            'custom_routes': custom,
            'providers': [
                {
                    'name': r.name,
                    'type': r.route_type.value,
                    'score': round(r.score, 3),
                    'session_id': self._cache.get(f"{SESSION_KEY_PREFIX}{r.name}"),
                }
                for r in self.providers
            ],
        }

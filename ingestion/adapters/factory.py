"""
Adapter factory: resolves configured service names to adapter instances
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from config.settings import AcquisitionConfig, APIConfig
from data.models import ProductAnalysisState
from data.state_store import ProductStateStore
from ingestion.adapters.base import ReviewSourceAdapter
from ingestion.adapters.direct_html import DirectHTMLAdapter
from ingestion.adapters.endpoint_replay import EndpointReplayAdapter
from ingestion.adapters.managed_job import ManagedJobAdapter
from ingestion.adapters.third_party_api import ThirdPartyAPIAdapter
from ingestion.credential_pool import CredentialPool
from ingestion.route_selector import RouteSelector
from utils.background import BackgroundTaskRunner
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

SERVICE_ALIASES = {
    'brightdata': 'brightdata',
    'bright-data': 'brightdata',
    'bd': 'brightdata',
    'scraping': 'direct',
    'direct': 'direct',
    'scrape': 'direct',
    'ajax': 'ajax',
    'endpoint-replay': 'ajax',
    'unwrangle': 'unwrangle',
    'api': 'unwrangle',
}

DEFAULT_ORDER = ['brightdata', 'ajax', 'direct', 'unwrangle']


def resolve_service_name(name: str) -> str:
    key = (name or '').strip().lower()
    if key not in SERVICE_ALIASES:
        raise ValueError(f"Unknown review service: {name!r}")
    return SERVICE_ALIASES[key]


class AdapterFactory:
    """Builds adapters that share one credential pool, route selector and store"""

    def __init__(self, store: Optional[ProductStateStore] = None,
                 credential_pool: Optional[CredentialPool] = None,
                 route_selector: Optional[RouteSelector] = None,
                 api_config: Optional[APIConfig] = None,
                 acquisition_config: Optional[AcquisitionConfig] = None,
                 runner: Optional[BackgroundTaskRunner] = None,
                 cache: Optional[TTLCache] = None,
                 after_persist: Optional[Callable[[ProductAnalysisState], Any]] = None,
                 on_background_failure: Optional[Callable[[str, str, Exception], Any]] = None):
        self.cache = cache if cache is not None else TTLCache()
        self.store = store if store is not None else ProductStateStore()
        self.credential_pool = credential_pool if credential_pool is not None else CredentialPool.from_env(self.cache)
        self.route_selector = route_selector if route_selector is not None else RouteSelector.from_env(self.cache)
        self.api_config = api_config or APIConfig()
        self.acquisition_config = acquisition_config or AcquisitionConfig()
        self.runner = runner
        self.after_persist = after_persist
        self.on_background_failure = on_background_failure

        self._builders: Dict[str, Callable[[], ReviewSourceAdapter]] = {
            'brightdata': lambda: ManagedJobAdapter(self.api_config, self.acquisition_config,
                                                    store=self.store, runner=self.runner,
                                                    after_persist=self.after_persist,
                                                    on_background_failure=self.on_background_failure),
            'direct': lambda: DirectHTMLAdapter(self.credential_pool, self.route_selector,
                                                self.acquisition_config, store=self.store),
            'ajax': lambda: EndpointReplayAdapter(self.credential_pool, self.route_selector,
                                                  self.acquisition_config, store=self.store),
            'unwrangle': lambda: ThirdPartyAPIAdapter(self.api_config, store=self.store),
        }

    def create(self, name: Optional[str] = None) -> ReviewSourceAdapter:
        """Create the adapter for name (defaults to AMAZON_REVIEW_SERVICE)"""
        canonical = resolve_service_name(name or self.acquisition_config.review_service)
        adapter = self._builders[canonical]()
        logger.debug(f"Created review adapter {adapter.service_name}")
        return adapter

    def priority_names(self, primary: Optional[str] = None) -> List[str]:
        """
        Configured fallback order: REVIEW_ADAPTER_PRIORITY when set, otherwise
        the primary service followed by the default order, without duplicates.
        """
        if self.acquisition_config.adapter_priority:
            names = [resolve_service_name(n) for n in self.acquisition_config.adapter_priority.split(',') if n.strip()]
        else:
            names = [resolve_service_name(primary or self.acquisition_config.review_service)] + DEFAULT_ORDER
        ordered = []
        for name in names:
            if name not in ordered:
                ordered.append(name)
        return ordered

    def create_in_priority(self, primary: Optional[str] = None) -> List[ReviewSourceAdapter]:
        return [self._builders[name]() for name in self.priority_names(primary)]


def create_adapter(name: Optional[str] = None, **deps) -> ReviewSourceAdapter:
    """Convenience wrapper around AdapterFactory(**deps).create(name)"""
    return AdapterFactory(**deps).create(name)

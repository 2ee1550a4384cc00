"""
Operational health snapshot for dashboards
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from monitoring.alerts import SERVICE_TIERS

KNOWN_ERROR_TYPES = (
    'BLOCKED', 'SCRAPING_FAILED', 'API_ERROR', 'POLLING_TIMEOUT',
    'JOB_TRIGGER_FAILED', 'SESSION_EXPIRED', 'UNAVAILABLE', 'INVALID_RESPONSE',
)


def operational_snapshot(credential_pool=None, route_selector=None, alert_policy=None, llm_client=None,
                         services: Optional[Iterable[str]] = None,
                         window_minutes: int = 60) -> Dict[str, Any]:
    """Credential health, route stats, LLM provider health and recent error rates in one dict"""
    snapshot: Dict[str, Any] = {'generated_at': datetime.now().isoformat()}

    if credential_pool is not None:
        sessions = credential_pool.health_snapshot()
        snapshot['credentials'] = {
            'total': len(sessions),
            'healthy': sum(1 for s in sessions if s['healthy']),
            'sessions': sessions,
        }

    if route_selector is not None:
        snapshot['routes'] = route_selector.stats()

    if llm_client is not None:
        snapshot['llm_providers'] = llm_client.provider_metrics()

    if alert_policy is not None:
        error_rates = {}
        for service in services or SERVICE_TIERS:
            rates = {}
            for error_type in KNOWN_ERROR_TYPES:
                rate = alert_policy.get_error_rate(service, error_type, window_minutes)
                if rate['failures']:
                    rates[error_type] = rate
            error_rates[service] = {
                'tier': alert_policy.classify(service).value,
                'errors': rates,
            }
        snapshot['error_rates'] = error_rates

    return snapshot

"""
Alert escalation policy

Turns a stream of individual service failures into paged alerts by
looking at failure rates rather than single events. Severity is scaled
down for services that only back up the primary path, and alerts are
suppressed while a service has recently recovered or an identical alert
is still inside its throttle window.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from config.settings import SETTINGS
from data.models import AlertDecision, AlertLevel, FailureEvent, ServiceTier
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

LEVEL_ORDER = [AlertLevel.P0, AlertLevel.P1, AlertLevel.P2, AlertLevel.P3, AlertLevel.SUPPRESS]

SERVICE_TIERS = {
    'BrightData Web Scraper': ServiceTier.PRIMARY,
    'BrightData API': ServiceTier.PRIMARY,
    'OpenAI Service': ServiceTier.CORE,
    'Amazon Direct Scraping': ServiceTier.FALLBACK,
    'Amazon AJAX Scraping': ServiceTier.FALLBACK,
    'Unwrangle API': ServiceTier.FALLBACK,
}

# Steps of severity removed per tier
TIER_DOWNGRADE = {
    ServiceTier.PRIMARY: 0,
    ServiceTier.CORE: 1,
    ServiceTier.FALLBACK: 2,
}

BUSINESS_IMPACT = {
    ServiceTier.PRIMARY: {
        'revenue_affecting': True,
        'user_facing': True,
        'description': 'Affects core product functionality and user experience',
    },
    ServiceTier.CORE: {
        'revenue_affecting': True,
        'user_facing': True,
        'description': 'Essential for analysis quality but has fallbacks',
    },
    ServiceTier.FALLBACK: {
        'revenue_affecting': False,
        'user_facing': False,
        'description': 'Backup service, minimal impact when primary services work',
    },
}

MESSAGE_WINDOW_MINUTES = 15


def downgrade(level: AlertLevel, steps: int) -> AlertLevel:
    if level is AlertLevel.SUPPRESS or steps <= 0:
        return level
    # Levels pushed past P3 are suppressed, never wrapped
    index = min(LEVEL_ORDER.index(level) + steps, len(LEVEL_ORDER) - 1)
    return LEVEL_ORDER[index]


def recommended_action(service: str, error_type: str) -> str:
    if 'BrightData' in service:
        return {
            'JOB_TRIGGER_FAILED': 'Check BrightData API status and authentication credentials',
            'POLLING_TIMEOUT': 'Monitor job completion manually, check for service degradation',
            'SCRAPING_FAILED': 'Verify marketplace target accessibility and BrightData dataset configuration',
        }.get(error_type, 'Check BrightData service status and API connectivity')

    if 'OpenAI' in service:
        return {
            'QUOTA_EXCEEDED': 'URGENT: Check OpenAI billing and increase quota limits',
            'API_ERROR': 'Check OpenAI status page and API key validity',
        }.get(error_type, 'Monitor OpenAI service status and retry failed requests')

    if 'Amazon' in service:
        if error_type in ('BLOCKED', 'SESSION_EXPIRED'):
            return 'Refresh marketplace session cookies and check proxy health'
        return 'Expected for fallback services - verify the primary scraper is functioning'

    if 'Unwrangle' in service:
        return 'Check Unwrangle API credits and the stored marketplace cookie'

    return 'Investigate service logs and check external dependencies'


class AlertEscalationPolicy:
    """
    Rate-based alerting over a rolling failure window.

    State lives in a TTLCache:
        failures:<service>:<error_type>         FailureEvents, last 24 hours
        recovery:<service>:<error_type|*>       set by record_recovery, 30 minutes
        alert_throttle:<service>:<error>:<lvl>  set when an alert is sent
    """

    def __init__(self, cache: Optional[TTLCache] = None, notifier=None,
                 clock: Callable[[], float] = time.time):
        self.clock = clock
        self.cache = cache or TTLCache(clock=clock)
        self.notifier = notifier
        self.thresholds = SETTINGS['alert_thresholds']
        self.throttle_minutes = SETTINGS['alert_throttle_minutes']
        self.recovery_minutes = SETTINGS['alert_recovery_suppression_minutes']
        self.window_seconds = SETTINGS['failure_window_hours'] * 3600

    def classify(self, service: str) -> ServiceTier:
        return SERVICE_TIERS.get(service, ServiceTier.FALLBACK)

    def business_impact(self, service: str) -> Dict[str, Any]:
        return dict(BUSINESS_IMPACT[self.classify(service)])

    def record_failure(self, service: str, error_type: str, message: str = '',
                       context: Optional[Dict[str, Any]] = None) -> AlertDecision:
        """Record one failure and dispatch an alert if the failure rate warrants it"""
        context = dict(context or {})
        logger.warning(f"Service failure recorded: {service} [{error_type}] {message}")

        self._track(service, error_type)

        tier = self.classify(service)
        base_level = self.base_level(service, error_type)
        level = downgrade(base_level, TIER_DOWNGRADE[tier])
        decision = AlertDecision(service=service, error_type=error_type, level=level, context=context)

        if level is AlertLevel.SUPPRESS:
            decision.suppressed_reason = 'below_threshold'
            return decision

        if self._recently_recovered(service, error_type):
            decision.suppressed_reason = 'recent_recovery'
            logger.info(f"Alert suppressed for {service} [{error_type}]: recent recovery")
            return decision

        # Claiming the throttle key is the send decision; only one caller can win it
        throttle_key = f"alert_throttle:{service}:{error_type}:{level.value}"
        if not self.cache.set_if_absent(throttle_key, True, ttl=self.throttle_minutes[level.value] * 60):
            decision.suppressed_reason = 'throttled'
            logger.info(f"Alert throttled for {service} [{error_type}] at {level.value}")
            return decision

        error_rate = self.get_error_rate(service, error_type, MESSAGE_WINDOW_MINUTES)
        impact = BUSINESS_IMPACT[tier]
        decision.message = self.build_message(service, level, impact, error_rate, message)
        decision.context = {
            **context,
            'alert_level': level.value,
            'service_criticality': tier.value,
            'business_impact': dict(impact),
            'error_rate': error_rate,
            'recommended_action': recommended_action(service, error_type),
            'escalation_required': level in (AlertLevel.P0, AlertLevel.P1),
        }
        decision.dispatched = True

        logger.error(decision.message)
        if self.notifier is not None:
            self.notifier.send(decision)
        return decision

    def record_recovery(self, service: str, error_type: Optional[str] = None) -> None:
        """Suppress alerts for this service (one error type, or all) for the recovery window"""
        key = f"recovery:{service}:{error_type or '*'}"
        self.cache.set(key, self.clock(), ttl=self.recovery_minutes * 60)
        logger.debug(f"Service recovery recorded: {service} [{error_type or 'all'}]")

    def get_error_rate(self, service: str, error_type: str, window_minutes: int = 10) -> Dict[str, Any]:
        failures = self._failures_in_window(service, error_type, window_minutes)
        return {
            'failures': len(failures),
            'window_minutes': window_minutes,
            'rate_per_minute': len(failures) / window_minutes if window_minutes else 0.0,
        }

    def base_level(self, service: str, error_type: str) -> AlertLevel:
        """Tightest threshold met, before any tier adjustment"""
        for level in (AlertLevel.P0, AlertLevel.P1, AlertLevel.P2, AlertLevel.P3):
            count, window = self.thresholds[level.value]
            if len(self._failures_in_window(service, error_type, window)) >= count:
                return level
        return AlertLevel.SUPPRESS

    @staticmethod
    def build_message(service: str, level: AlertLevel, impact: Dict[str, Any],
                      error_rate: Dict[str, Any], message: str) -> str:
        impact_label = 'REVENUE IMPACT' if impact['revenue_affecting'] else 'OPERATIONAL IMPACT'
        facing = 'USER-FACING' if impact['user_facing'] else 'INTERNAL'
        return (
            f"[{level.value}] {impact_label} {facing} Service Issue: {service} failed with "
            f"{error_rate['failures']} errors in {error_rate['window_minutes']} minutes. {message}"
        ).strip()

    def _track(self, service: str, error_type: str) -> None:
        now = self.clock()
        cutoff = now - self.window_seconds

        def append(events: Optional[List[FailureEvent]]) -> List[FailureEvent]:
            kept = [e for e in (events or []) if e.timestamp > cutoff]
            kept.append(FailureEvent(service=service, error_type=error_type, timestamp=now))
            return kept

        self.cache.update(f"failures:{service}:{error_type}", append, default=[], ttl=self.window_seconds)

    def _failures_in_window(self, service: str, error_type: str, window_minutes: int) -> List[FailureEvent]:
        cutoff = self.clock() - window_minutes * 60
        return [e for e in self.cache.get(f"failures:{service}:{error_type}", []) if e.timestamp > cutoff]

    def _recently_recovered(self, service: str, error_type: str) -> bool:
        return (self.cache.has(f"recovery:{service}:{error_type}")
                or self.cache.has(f"recovery:{service}:*"))

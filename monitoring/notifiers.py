"""
Alert notification channels
"""

import logging
from typing import List, Optional

import requests

from config.settings import APIConfig
from data.models import AlertDecision, AlertLevel

logger = logging.getLogger(__name__)

PUSHOVER_URL = "https://api.pushover.net/1/messages.json"

PUSHOVER_PRIORITY = {
    AlertLevel.P0: 2,
    AlertLevel.P1: 1,
    AlertLevel.P2: 0,
    AlertLevel.P3: -1,
}

# Emergency-priority messages repeat until acknowledged
EMERGENCY_RETRY_SECONDS = 60
EMERGENCY_EXPIRE_SECONDS = 3600


class LoggingNotifier:
    """Writes alerts to the log; the default channel"""

    def send(self, decision: AlertDecision) -> bool:
        log = logger.critical if decision.escalation_required else logger.warning
        log(f"ALERT {decision.message} | action: {decision.context.get('recommended_action', '')}")
        return True


class PushoverNotifier:
    """Sends alerts through the Pushover messages API"""

    def __init__(self, token: Optional[str] = None, user: Optional[str] = None, timeout: int = 10):
        config = APIConfig()
        self.token = token or config.pushover_token
        self.user = user or config.pushover_user
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.token and self.user)

    def build_payload(self, decision: AlertDecision) -> dict:
        priority = PUSHOVER_PRIORITY.get(decision.level, 0)
        payload = {
            'token': self.token,
            'user': self.user,
            'title': f"{decision.level.value} {decision.service}",
            'message': decision.message[:1024],
            'priority': priority,
        }
        if priority == 2:
            payload['retry'] = EMERGENCY_RETRY_SECONDS
            payload['expire'] = EMERGENCY_EXPIRE_SECONDS
        return payload

    def send(self, decision: AlertDecision) -> bool:
        if not self.configured:
            logger.warning("Pushover notification skipped - missing token or user configuration")
            return False

        try:
            resp = requests.post(PUSHOVER_URL, data=self.build_payload(decision), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Pushover notification failed: {e}")
            return False

        if resp.status_code != 200:
            logger.error(f"Pushover notification failed: HTTP {resp.status_code} {resp.text[:200]}")
            return False

        logger.info(f"Pushover notification sent for {decision.service} [{decision.level.value}]")
        return True


class CompositeNotifier:
    """Fans one alert out to several channels"""

    def __init__(self, notifiers: List):
        self.notifiers = list(notifiers)

    def send(self, decision: AlertDecision) -> bool:
        results = [notifier.send(decision) for notifier in self.notifiers]
        return any(results)


def default_notifier():
    """Log always; add Pushover when it is configured"""
    pushover = PushoverNotifier()
    if pushover.configured:
        return CompositeNotifier([LoggingNotifier(), pushover])
    return LoggingNotifier()

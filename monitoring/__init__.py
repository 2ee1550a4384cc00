"""
Monitoring module
Rate-based alert escalation, notification channels and health snapshots
"""

from .alerts import AlertEscalationPolicy
from .notifiers import LoggingNotifier, PushoverNotifier, CompositeNotifier
from .health import operational_snapshot

__all__ = ['AlertEscalationPolicy', 'LoggingNotifier', 'PushoverNotifier', 'CompositeNotifier',
           'operational_snapshot']

"""
Persistence boundary for ProductAnalysisState

Every write goes through ProductStateStore, which enforces that analysis
status only moves forward and that a completed record is never overwritten.
"""

import copy
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from data.models import AnalysisStatus, ProductAnalysisState

logger = logging.getLogger(__name__)


class StatusRegressionError(Exception):
    """Raised by strict writes that would move status backward"""

    def __init__(self, key: Tuple[str, str], current: AnalysisStatus, attempted: AnalysisStatus):
        self.key = key
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Rejected status change for {key[0]}/{key[1]}: "
            f"{current.value} -> {attempted.value}"
        )


class ProductStateStore:
    """
    Thread-safe in-memory store of analysis records.

    Records are copied on the way in and out so callers can't mutate stored
    state behind the store's back.
    """

    def __init__(self):
        self._records: Dict[Tuple[str, str], ProductAnalysisState] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(product_id: str, country: str) -> Tuple[str, str]:
        return (product_id, (country or 'us').lower())

    def get(self, product_id: str, country: str = 'us') -> Optional[ProductAnalysisState]:
        with self._lock:
            record = self._records.get(self._key(product_id, country))
            return copy.deepcopy(record) if record is not None else None

    def get_or_create(self, product_id: str, country: str = 'us') -> ProductAnalysisState:
        key = self._key(product_id, country)
        with self._lock:
            if key not in self._records:
                logger.info(f"Creating analysis record for {key[0]}/{key[1]}")
                self._records[key] = ProductAnalysisState(product_id=key[0], country=key[1])
            return copy.deepcopy(self._records[key])

    def save(self, state: ProductAnalysisState, strict: bool = False) -> bool:
        """
        Write a whole record. Returns False (record unchanged) when the write
        would regress status or touch a completed record.
        """
        key = self._key(state.product_id, state.country)
        with self._lock:
            current = self._records.get(key)
            if current is not None and not self._allowed(current, state.status, strict):
                return False
            stored = copy.deepcopy(state)
            stored.country = key[1]
            self._records[key] = stored
            return True

    def update(self, product_id: str, country: str = 'us', strict: bool = False, **fields) -> bool:
        """
        Update selected fields of a record.

        A status regression (or any write to a completed record) is rejected
        and logged; with strict=True it raises StatusRegressionError instead.
        """
        key = self._key(product_id, country)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                current = ProductAnalysisState(product_id=key[0], country=key[1])
                self._records[key] = current

            new_status = fields.get('status', current.status)
            if not self._allowed(current, new_status, strict):
                return False

            for name, value in fields.items():
                if not hasattr(current, name):
                    raise AttributeError(f"ProductAnalysisState has no field '{name}'")
                setattr(current, name, copy.deepcopy(value))
            return True

    def transition(self, product_id: str, country: str, status: AnalysisStatus, **fields) -> bool:
        return self.update(product_id, country, status=status, **fields)

    def force_reanalysis(self, product_id: str, country: str = 'us') -> None:
        """Explicit operator action: reopen a completed record for a fresh run"""
        key = self._key(product_id, country)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                return
            logger.warning(f"Forcing re-analysis of {key[0]}/{key[1]} (was {current.status.value})")
            current.status = AnalysisStatus.PENDING_ANALYSIS
            current.last_analyzed_at = datetime.now()

    def all(self) -> List[ProductAnalysisState]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]

    def _allowed(self, current: ProductAnalysisState, new_status: AnalysisStatus, strict: bool) -> bool:
        if current.status.can_transition_to(new_status) and current.status is not AnalysisStatus.COMPLETED:
            return True
        key = (current.product_id, current.country)
        if strict:
            raise StatusRegressionError(key, current.status, new_status)
        logger.warning(
            f"Rejected write to {key[0]}/{key[1]}: status {current.status.value} "
            f"cannot move to {new_status.value}"
        )
        return False

"""
Data models for the review authenticity pipeline
Credentials, egress routes, canonical reviews and per-product analysis state
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from datetime import datetime
from enum import Enum
import time


class RouteType(Enum):
    RESIDENTIAL = "residential"
    DATACENTER = "datacenter"
    CUSTOM = "custom"
    DIRECT = "direct"


class AnalysisStatus(Enum):
    """Lifecycle of a product analysis. Ordered except for FAILED."""
    PENDING = "pending"
    FETCHED = "fetched"
    PENDING_ANALYSIS = "pending_analysis"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        """Position along the forward order; FAILED has no rank (-1)"""
        if self is AnalysisStatus.FAILED:
            return -1
        return _STATUS_ORDER.index(self)

    def can_transition_to(self, new_status: 'AnalysisStatus') -> bool:
        """
        Check whether moving from this status to new_status keeps the
        lifecycle monotonic.

        COMPLETED is terminal. FAILED is reachable from any non-completed
        state and is itself retryable, so it may move anywhere.
        """
        if self is AnalysisStatus.COMPLETED:
            return new_status is AnalysisStatus.COMPLETED
        if self is AnalysisStatus.FAILED or new_status is AnalysisStatus.FAILED:
            return True
        return new_status.rank >= self.rank


_STATUS_ORDER = [
    AnalysisStatus.PENDING,
    AnalysisStatus.FETCHED,
    AnalysisStatus.PENDING_ANALYSIS,
    AnalysisStatus.PROCESSING,
    AnalysisStatus.ANALYZED,
    AnalysisStatus.COMPLETED,
]


class AlertLevel(Enum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    SUPPRESS = "SUPPRESS"


class ServiceTier(Enum):
    """Business-impact tier of a dependency"""
    PRIMARY = "primary"
    CORE = "core"
    FALLBACK = "fallback"


@dataclass
class Credential:
    """Rotating session credential (cookie string) for marketplace requests"""
    index: int
    payload: str
    name: str = ""
    cooldown_until: Optional[float] = None
    last_used: Optional[float] = None
    last_reason: str = ""

    def __post_init__(self):
        if not self.name:
            self.name = f"cookie_{self.index + 1}"

    def is_healthy(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.cooldown_until is None or self.cooldown_until <= now

    def to_cookie_dict(self) -> Dict[str, str]:
        """Parse a 'name=value; name2=value2' cookie header into a dict"""
        cookies = {}
        for part in self.payload.split(';'):
            if '=' not in part:
                continue
            name, value = part.split('=', 1)
            name = name.strip()
            if name:
                cookies[name] = value.strip()
        return cookies


@dataclass
class Route:
    """Outbound network path: a proxy pool or a direct connection"""
    name: str
    route_type: RouteType
    endpoint: Optional[str] = None  # host:port, None for direct
    username: str = ""
    password: str = ""
    country: str = ""
    reliability: float = 1.0
    cost_per_gb: float = 0.0
    supports_session_rotation: bool = False
    session_id: Optional[str] = None

    @property
    def is_direct(self) -> bool:
        return self.route_type is RouteType.DIRECT or not self.endpoint

    @property
    def score(self) -> float:
        """Weighted preference: reliability*0.7 + normalized inverse cost*0.3"""
        return self.reliability * 0.7 + (20 - self.cost_per_gb) / 20 * 0.3

    def proxy_url(self) -> Optional[str]:
        if self.is_direct:
            return None
        user = self.username
        if self.session_id and self.supports_session_rotation:
            user = f"{user}-session-{self.session_id}"
        if user:
            return f"http://{user}:{self.password}@{self.endpoint}"
        return f"http://{self.endpoint}"

    def proxies(self) -> Optional[Dict[str, str]]:
        """Proxies mapping for requests, None for direct routes"""
        url = self.proxy_url()
        if url is None:
            return None
        return {'http': url, 'https': url}


@dataclass
class ReviewRecord:
    """Canonical review after normalization"""
    id: str
    rating: Optional[int]
    text: str
    title: str = ""
    author: str = ""
    verified_purchase: bool = False
    date: Optional[str] = None
    helpful_count: Optional[int] = None
    images: List[str] = field(default_factory=list)
    videos: List[str] = field(default_factory=list)
    is_vine: bool = False

    def is_scorable(self) -> bool:
        """Body text and a 1-5 rating are required for scoring"""
        return bool(self.text and self.text.strip()) and self.rating is not None and 1 <= self.rating <= 5

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'rating': self.rating,
            'review_title': self.title,
            'review_text': self.text,
            'author': self.author,
            'date': self.date,
            'meta_data': {
                'verified_purchase': self.verified_purchase,
                'is_vine_voice': self.is_vine,
                'helpful_votes': self.helpful_count or 0,
            },
            'images': list(self.images),
            'videos': list(self.videos),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewRecord':
        meta = data.get('meta_data') or {}
        return cls(
            id=str(data.get('id', '')),
            rating=data.get('rating'),
            text=data.get('review_text') or data.get('text') or '',
            title=data.get('review_title') or data.get('title') or '',
            author=data.get('author', ''),
            verified_purchase=bool(meta.get('verified_purchase', data.get('verified_purchase', False))),
            date=data.get('date'),
            helpful_count=meta.get('helpful_votes'),
            images=list(data.get('images') or []),
            videos=list(data.get('videos') or []),
            is_vine=bool(meta.get('is_vine_voice', data.get('is_vine', False))),
        )


@dataclass
class ReviewBatch:
    """Result of one adapter fetch"""
    reviews: List[ReviewRecord]
    description: str = ""
    total_reviews: int = 0
    product_name: str = ""
    product_image_url: str = ""
    source: str = ""

    @property
    def has_product_metadata(self) -> bool:
        return bool(self.product_name) and bool(self.product_image_url)


@dataclass
class ProductAnalysisState:
    """Per-product analysis record keyed by (product_id, country)"""
    product_id: str
    country: str = "us"
    status: AnalysisStatus = AnalysisStatus.PENDING
    reviews: List[ReviewRecord] = field(default_factory=list)
    description: str = ""
    total_reviews_on_source: int = 0
    product_title: str = ""
    product_image_url: str = ""
    have_product_data: bool = False
    source: str = ""

    analysis_result: Optional[Dict[str, Any]] = None
    fake_percentage: Optional[float] = None
    grade: Optional[str] = None
    confidence: Optional[str] = None
    explanation: Optional[str] = None
    amazon_rating: Optional[float] = None
    adjusted_rating: Optional[float] = None
    fake_examples: List[Any] = field(default_factory=list)
    key_patterns: List[Any] = field(default_factory=list)
    product_insights: Optional[str] = None

    failure_reason: Optional[str] = None
    first_analyzed_at: Optional[datetime] = None
    last_analyzed_at: Optional[datetime] = None

    @property
    def key(self) -> tuple:
        return (self.product_id, self.country)

    def is_analyzable(self) -> bool:
        return len(self.reviews) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'country': self.country,
            'status': self.status.value,
            'total_reviews': len(self.reviews),
            'total_reviews_on_source': self.total_reviews_on_source,
            'product_title': self.product_title,
            'fake_percentage': self.fake_percentage,
            'grade': self.grade,
            'confidence': self.confidence,
            'explanation': self.explanation,
            'amazon_rating': self.amazon_rating,
            'adjusted_rating': self.adjusted_rating,
            'fake_examples': self.fake_examples,
            'key_patterns': self.key_patterns,
            'product_insights': self.product_insights,
            'failure_reason': self.failure_reason,
            'last_analyzed_at': self.last_analyzed_at.isoformat() if self.last_analyzed_at else None,
        }


@dataclass
class FailureEvent:
    """A single adapter or LLM failure, kept only inside the rolling window"""
    service: str
    error_type: str
    timestamp: float

@dataclass
class AlertDecision:
    """Outcome of evaluating one failure against the escalation policy"""
    service: str
    error_type: str
    level: AlertLevel
    dispatched: bool = False
    message: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    suppressed_reason: Optional[str] = None

    @property
    def escalation_required(self) -> bool:
        return self.level in (AlertLevel.P0, AlertLevel.P1)

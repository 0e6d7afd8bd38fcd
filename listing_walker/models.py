"""
Data models for the listing walker.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from .config import HumanizeConfig, SelectorConfig
from .errors import ProgressInvariantError
from .utils import extract_resource_id


class WorkflowState(str, Enum):
    """Position of the current incarnation, derived on every start."""
    IDLE = 'idle'
    AWAITING_TARGET = 'awaiting_target'
    AT_TARGET = 'at_target'
    BLOCKED = 'blocked'
    FINALIZING = 'finalizing'
    RECOVERING = 'recovering'


class StepOutcome(str, Enum):
    """How an incarnation ended."""
    TRANSITIONED = 'transitioned'
    IDLE = 'idle'
    BLOCKED = 'blocked'
    FINALIZED = 'finalized'
    HALTED = 'halted'

    @property
    def terminal(self) -> bool:
        return self is not StepOutcome.TRANSITIONED


class JobStatus(str, Enum):
    RUNNING = 'running'
    COMPLETED = 'completed'


class Origin(str, Enum):
    """Who published a listing."""
    OWNER = 'Owner'
    AGENCY = 'Agency'
    UNKNOWN = 'Unknown'


@dataclass
class Price:
    raw: str = ''
    numeric: Optional[int] = None


@dataclass
class Contact:
    phone: str = ''
    name: str = ''


@dataclass
class ExtractedRecord:
    """Structured data extracted from one detail resource."""
    url: str
    title: str = ''
    price: Price = field(default_factory=Price)
    description: str = ''
    images: List[str] = field(default_factory=list)
    details: Dict[str, str] = field(default_factory=dict)
    contact: Contact = field(default_factory=Contact)
    address: str = ''
    origin: Origin = Origin.UNKNOWN
    date: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'price': {'raw': self.price.raw, 'numeric': self.price.numeric},
            'description': self.description,
            'images': list(self.images),
            'detailsMap': dict(self.details),
            'contact': {'phone': self.contact.phone, 'name': self.contact.name},
            'address': self.address,
            'from': self.origin.value,
            'date': self.date,
            'url': self.url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedRecord":
        price = data.get('price') or {}
        contact = data.get('contact') or {}
        try:
            origin = Origin(data.get('from', Origin.UNKNOWN.value))
        except ValueError:
            origin = Origin.UNKNOWN
        return cls(
            url=data.get('url', ''),
            title=data.get('title', ''),
            price=Price(raw=price.get('raw', ''), numeric=price.get('numeric')),
            description=data.get('description', ''),
            images=list(data.get('images', [])),
            details=dict(data.get('detailsMap', {})),
            contact=Contact(phone=contact.get('phone', ''), name=contact.get('name', '')),
            address=data.get('address', ''),
            origin=origin,
            date=data.get('date', ''),
        )


@dataclass
class WorkflowProgress:
    """Persistent state for a resumable walk. The only durable job state."""
    job_id: str
    token: str
    anchor_resource: str
    target_queue: List[str] = field(default_factory=list)
    cursor: int = 0
    results: List[ExtractedRecord] = field(default_factory=list)
    selector_config: SelectorConfig = field(default_factory=SelectorConfig)
    require_phone: bool = False
    humanize_config: HumanizeConfig = field(default_factory=HumanizeConfig)
    max_items: int = 10
    items_per_page: int = 20
    recovery_attempts: int = 0
    step_failures: int = 0
    last_break_at: int = -1
    errors: List[Dict[str, str]] = field(default_factory=list)
    started_at: str = ''
    last_updated: str = ''

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.target_queue)

    @property
    def current_target(self) -> Optional[str]:
        if self.exhausted:
            return None
        return self.target_queue[self.cursor]

    def add_error(self, message: str, step: str):
        self.errors.append({
            'message': message,
            'step': step,
            'timestamp': datetime.now().isoformat()
        })

    def validate(self):
        """
        Check the progress invariants.

        Raises:
            ProgressInvariantError: if any invariant is violated
        """
        if not 0 <= self.cursor <= len(self.target_queue):
            raise ProgressInvariantError(
                f"cursor {self.cursor} outside [0, {len(self.target_queue)}]"
            )
        if len(self.results) > self.cursor:
            raise ProgressInvariantError(
                f"{len(self.results)} results exceed cursor {self.cursor}"
            )
        ids = [extract_resource_id(u) for u in self.target_queue]
        if len(ids) != len(set(ids)):
            raise ProgressInvariantError("target queue contains duplicate resources")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_id,
            'token': self.token,
            'anchor_resource': self.anchor_resource,
            'target_queue': list(self.target_queue),
            'cursor': self.cursor,
            'results': [r.to_dict() for r in self.results],
            'selector_config': self.selector_config.to_dict(),
            'require_phone': self.require_phone,
            'humanize_config': self.humanize_config.to_dict(),
            'max_items': self.max_items,
            'items_per_page': self.items_per_page,
            'recovery_attempts': self.recovery_attempts,
            'step_failures': self.step_failures,
            'last_break_at': self.last_break_at,
            'errors': list(self.errors),
            'started_at': self.started_at,
            'last_updated': self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowProgress":
        return cls(
            job_id=data['job_id'],
            token=data.get('token', ''),
            anchor_resource=data['anchor_resource'],
            target_queue=list(data.get('target_queue', [])),
            cursor=int(data.get('cursor', 0)),
            results=[ExtractedRecord.from_dict(r) for r in data.get('results', [])],
            selector_config=SelectorConfig.from_dict(data.get('selector_config')),
            require_phone=bool(data.get('require_phone', False)),
            humanize_config=HumanizeConfig.from_dict(data.get('humanize_config')),
            max_items=int(data.get('max_items', 10)),
            items_per_page=int(data.get('items_per_page', 20)),
            recovery_attempts=int(data.get('recovery_attempts', 0)),
            step_failures=int(data.get('step_failures', 0)),
            last_break_at=int(data.get('last_break_at', -1)),
            errors=list(data.get('errors', [])),
            started_at=data.get('started_at', ''),
            last_updated=data.get('last_updated', ''),
        )


@dataclass
class JobResult:
    """Payload handed to the result sink once a job is finalized."""
    job_id: str
    token: str
    status: JobStatus
    records: List[ExtractedRecord] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_payload(self) -> Dict[str, Any]:
        return {
            'jobId': self.job_id,
            'token': self.token,
            'status': self.status.value,
            'records': [r.to_dict() for r in self.records],
            'metadata': {
                'itemsExtracted': len(self.records),
                'errors': list(self.errors),
                'timestamp': self.timestamp,
            },
        }

"""
Core entities for the Fee Portal.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List

from .enums import EventType, StorageKey
from .exceptions import ValidationError


def new_student_id() -> str:
    """Generate an opaque, stable student identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Student:
    """A student record.

    ``id`` never changes after creation and ``fees_paid`` only ever moves
    from False to True. Both rules are enforced by the repository, not here,
    so a snapshot received from another context is accepted as delivered.
    """
    id: str
    name: str
    email: str
    password: str
    fees_paid: bool = False
    
    def with_changes(self, **changes: Any) -> "Student":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert student to its wire shape."""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'password': self.password,
            'feesPaid': self.fees_paid,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Student":
        """Build a student from its wire shape."""
        if not isinstance(data, dict):
            raise ValidationError(f"Student record must be an object, got {type(data).__name__}")
        
        missing = [key for key in ('id', 'name', 'email', 'password') if key not in data]
        if missing:
            raise ValidationError(f"Student record missing fields: {', '.join(missing)}")
        
        fees_paid = data.get('feesPaid', False)
        if not isinstance(fees_paid, bool):
            raise ValidationError("feesPaid must be a boolean")
        
        return cls(
            id=str(data['id']),
            name=str(data['name']),
            email=str(data['email']),
            password=str(data['password']),
            fees_paid=fees_paid,
        )
    
    def __repr__(self) -> str:
        return f"Student(id={self.id!r}, email={self.email!r}, fees_paid={self.fees_paid})"


@dataclass(frozen=True)
class SyncMessage:
    """A collection change as exchanged between execution contexts."""
    key: str
    snapshot: List[Dict[str, Any]]
    origin: str
    message_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    sent_at: float = field(default_factory=time.time)
    
    @classmethod
    def for_collection(cls, students: List[Student], origin: str) -> "SyncMessage":
        return cls(
            key=StorageKey.STUDENTS.value,
            snapshot=[student.to_dict() for student in students],
            origin=origin,
        )
    
    def students(self) -> List[Student]:
        """Decode the snapshot into student records."""
        return [Student.from_dict(item) for item in self.snapshot]
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'snapshot': self.snapshot,
            'origin': self.origin,
            'message_id': self.message_id,
            'sent_at': self.sent_at,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncMessage":
        snapshot = data.get('snapshot')
        if not isinstance(snapshot, list):
            raise ValidationError("Sync message snapshot must be a list")
        return cls(
            key=data['key'],
            snapshot=snapshot,
            origin=data['origin'],
            message_id=data.get('message_id') or str(uuid.uuid4()),
            sent_at=data.get('sent_at', time.time()),
        )


@dataclass(frozen=True)
class SyncEvent:
    """An event delivered to observers inside one execution context."""
    event_type: EventType
    payload: Dict[str, Any]


@dataclass(frozen=True)
class FeeItem:
    """One line of the fee breakdown."""
    label: str
    amount: Decimal


@dataclass(frozen=True)
class FeeStatement:
    """The fixed fee breakdown shown before payment."""
    items: List[FeeItem]
    currency: str = "USD"
    
    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0.00"))
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'currency': self.currency,
            'items': [{'label': item.label, 'amount': str(item.amount)} for item in self.items],
            'total': str(self.total),
        }


STANDARD_FEES = FeeStatement(items=[
    FeeItem("Tuition Fee", Decimal("2200.00")),
    FeeItem("Library Fee", Decimal("150.00")),
    FeeItem("Lab Fee", Decimal("100.00")),
    FeeItem("Activity Fee", Decimal("50.00")),
])


@dataclass(frozen=True)
class PaymentStatistics:
    """Counts of paid and unpaid students in a snapshot."""
    total: int
    paid: int
    unpaid: int
    paid_percent: int
    unpaid_percent: int
    
    @classmethod
    def from_students(cls, students: List[Student]) -> "PaymentStatistics":
        total = len(students)
        paid = sum(1 for student in students if student.fees_paid)
        unpaid = total - paid
        
        def percent(count: int) -> int:
            # Round half up, as the overview page does.
            return int(Decimal(count * 100) / Decimal(total) + Decimal("0.5")) if total else 0
        
        return cls(
            total=total,
            paid=paid,
            unpaid=unpaid,
            paid_percent=percent(paid),
            unpaid_percent=percent(unpaid),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'paid': self.paid,
            'unpaid': self.unpaid,
            'paid_percent': self.paid_percent,
            'unpaid_percent': self.unpaid_percent,
        }

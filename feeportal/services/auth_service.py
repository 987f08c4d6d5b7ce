"""
Authentication and fee-payment operations exposed to the portal pages.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..core.entities import (
    STANDARD_FEES, FeeStatement, PaymentStatistics, Student, SyncEvent, new_student_id
)
from ..core.enums import EventType
from ..core.exceptions import (
    ConfigurationError, DuplicateEmailError, NoSessionError, NotFoundError, ValidationError
)
from ..persistence.repositories import RecordRepository
from .session_service import SessionService
from .sync_broadcaster import Subscription, SyncBroadcaster

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_DELAY = 2.0


def _require_text(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must not be empty")
    return value


class AuthService:
    """Login, signup, profile and payment operations for one context.

    Domain failures are reported as ``False`` rather than raised. Storage
    failures (``PersistenceError``) still propagate.
    """
    
    def __init__(self, repository: RecordRepository, sessions: SessionService,
                 broadcaster: SyncBroadcaster, payment_delay: float = DEFAULT_PAYMENT_DELAY,
                 fee_statement: FeeStatement = STANDARD_FEES):
        if payment_delay < 0:
            raise ConfigurationError(f"payment_delay must be >= 0, got {payment_delay}")
        self._repository = repository
        self._sessions = sessions
        self._broadcaster = broadcaster
        self._payment_delay = payment_delay
        self._fee_statement = fee_statement
        self._subscription: Optional[Subscription] = None
    
    def start(self) -> None:
        """Start applying collection changes made by other contexts."""
        if self._subscription is None:
            self._subscription = self._broadcaster.subscribe(
                {EventType.COLLECTION_CHANGED}, self.handle_collection_change
            )
    
    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
    
    @property
    def current_user(self) -> Optional[Student]:
        return self._sessions.current()
    
    @property
    def payment_delay(self) -> float:
        return self._payment_delay
    
    async def login(self, email: str, password: str) -> bool:
        student = self._repository.find_by_credentials(email, password)
        if student is None:
            logger.info("Login rejected for %s", email)
            return False
        self._sessions.establish(student)
        return True
    
    def logout(self) -> None:
        self._sessions.clear()
    
    async def signup(self, name: str, email: str, password: str) -> bool:
        try:
            student = Student(
                id=new_student_id(),
                name=_require_text(name, "Name"),
                email=_require_text(email, "Email"),
                password=password,
                fees_paid=False,
            )
            self._repository.insert(student)
        except (DuplicateEmailError, ValidationError) as e:
            logger.info("Signup rejected: %s", e.message)
            return False
        
        self._sessions.establish(student)
        return True
    
    async def update_profile(self, name: Optional[str] = None, email: Optional[str] = None) -> bool:
        """Change the logged-in student's name and/or email."""
        current = self._sessions.current()
        try:
            if current is None:
                raise NoSessionError("update_profile")
            
            changes: Dict[str, str] = {}
            if name is not None:
                changes["name"] = _require_text(name, "Name")
            if email is not None:
                changes["email"] = _require_text(email, "Email")
            
            updated = self._repository.update(current.id, lambda s: s.with_changes(**changes))
        except (NoSessionError, DuplicateEmailError, NotFoundError, ValidationError) as e:
            logger.info("Profile update rejected: %s", e.message)
            return False
        
        self._sessions.establish(updated)
        return True
    
    async def pay_fees(self) -> bool:
        """Simulate a payment for the logged-in student.

        Payment always succeeds after the fixed delay. The student is captured
        before the delay, so a login, logout or signup while the payment is
        processing does not redirect the charge; the session is reconciled
        afterwards rather than re-established.
        """
        payer = self._sessions.current()
        if payer is None:
            logger.info("Payment rejected: %s", NoSessionError("pay_fees").message)
            return False
        
        logger.info("Processing fee payment for student %s", payer.id)
        await asyncio.sleep(self._payment_delay)
        
        try:
            self._repository.update(payer.id, lambda s: s.with_changes(fees_paid=True))
        except NotFoundError as e:
            logger.warning("Payment for student %s dropped: %s", payer.id, e.message)
            return False
        
        self._sessions.reconcile(self._repository.all())
        self._broadcaster.publish_payment_completed(payer.id)
        logger.info("Fees paid for student %s", payer.id)
        return True
    
    def list_all(self) -> List[Student]:
        return self._repository.all()
    
    def payment_statistics(self) -> PaymentStatistics:
        return PaymentStatistics.from_students(self._repository.all())
    
    def fee_statement(self) -> FeeStatement:
        return self._fee_statement
    
    def handle_collection_change(self, event: SyncEvent) -> None:
        """Adopt a snapshot published by another context and refresh the session."""
        try:
            students = [Student.from_dict(item) for item in event.payload.get("snapshot", [])]
        except ValidationError as e:
            logger.warning("Ignoring malformed snapshot from %s: %s", event.payload.get("origin"), e.message)
            return
        
        collection = self._repository.replace_all(students)
        self._sessions.reconcile(collection)

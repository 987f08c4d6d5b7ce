"""
REST API for one Fee Portal execution context using FastAPI.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .. import __version__
from ..core.entities import Student
from ..core.exceptions import PersistenceError
from ..services import AuthService

logger = logging.getLogger(__name__)


def _reject_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("must not be blank")
    return value


# Pydantic models for API
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    password: str = Field(..., min_length=1)
    
    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value):
        return _reject_blank(value)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    
    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value):
        return _reject_blank(value)


class StudentResponse(BaseModel):
    id: str
    name: str
    email: str
    fees_paid: bool


class SessionResponse(BaseModel):
    authenticated: bool
    student: Optional[StudentResponse] = None


class OperationResponse(BaseModel):
    success: bool
    message: str
    student: Optional[StudentResponse] = None


class StatisticsResponse(BaseModel):
    total: int
    paid: int
    unpaid: int
    paid_percent: int
    unpaid_percent: int


class FeeItemResponse(BaseModel):
    label: str
    amount: str


class FeeStatementResponse(BaseModel):
    currency: str
    items: List[FeeItemResponse]
    total: str


def _student_to_response(student: Student) -> StudentResponse:
    """Convert a Student to its public shape; the password is never returned."""
    return StudentResponse(
        id=student.id,
        name=student.name,
        email=student.email,
        fees_paid=student.fees_paid,
    )


class FeePortalRestAPI:
    """REST API over the operations of a single execution context."""
    
    def __init__(self, auth_service: AuthService):
        self._auth = auth_service
        
        self.app = FastAPI(
            title="Fee Portal API",
            description="Student fee-payment portal",
            version=__version__,
            docs_url="/docs",
            redoc_url="/redoc"
        )
        
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        
        self._setup_routes()
    
    def _setup_routes(self):
        """Setup API routes."""
        auth = self._auth
        
        @self.app.exception_handler(PersistenceError)
        async def persistence_error_handler(request: Request, exc: PersistenceError):
            logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": f"Storage error: {exc.message}"},
            )
        
        @self.app.get("/health", response_model=Dict[str, str])
        async def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
        
        @self.app.post("/auth/login", response_model=OperationResponse)
        async def login(credentials: LoginRequest):
            if not await auth.login(credentials.email, credentials.password):
                raise HTTPException(status_code=401, detail="Invalid email or password")
            return OperationResponse(success=True, message="Logged in",
                                     student=_student_to_response(auth.current_user))
        
        @self.app.post("/auth/logout", response_model=OperationResponse)
        async def logout():
            auth.logout()
            return OperationResponse(success=True, message="Logged out")
        
        @self.app.post("/auth/signup", response_model=OperationResponse, status_code=status.HTTP_201_CREATED)
        async def signup(data: SignupRequest):
            if not await auth.signup(data.name, data.email, data.password):
                raise HTTPException(status_code=409, detail="Email already exists")
            return OperationResponse(success=True, message="Account created",
                                     student=_student_to_response(auth.current_user))
        
        @self.app.get("/session", response_model=SessionResponse)
        async def get_session():
            current = auth.current_user
            if current is None:
                return SessionResponse(authenticated=False)
            return SessionResponse(authenticated=True, student=_student_to_response(current))
        
        @self.app.patch("/profile", response_model=OperationResponse)
        async def update_profile(update: ProfileUpdate):
            if auth.current_user is None:
                raise HTTPException(status_code=401, detail="Not logged in")
            if not await auth.update_profile(name=update.name, email=update.email):
                raise HTTPException(status_code=409, detail="Email already exists")
            return OperationResponse(success=True, message="Profile updated",
                                     student=_student_to_response(auth.current_user))
        
        @self.app.post("/payments", response_model=OperationResponse)
        async def pay_fees():
            if auth.current_user is None:
                raise HTTPException(status_code=401, detail="Not logged in")
            if not await auth.pay_fees():
                raise HTTPException(status_code=409, detail="Payment could not be completed")
            current = auth.current_user
            return OperationResponse(
                success=True,
                message="Fees paid",
                student=_student_to_response(current) if current else None,
            )
        
        @self.app.get("/students", response_model=List[StudentResponse])
        async def list_students(skip: int = 0, limit: int = 100):
            """List all students."""
            students = auth.list_all()
            return [_student_to_response(student) for student in students[skip:skip + limit]]
        
        @self.app.get("/students/statistics", response_model=StatisticsResponse)
        async def payment_statistics():
            return StatisticsResponse(**auth.payment_statistics().to_dict())
        
        @self.app.get("/fees", response_model=FeeStatementResponse)
        async def fee_statement():
            return FeeStatementResponse(**auth.fee_statement().to_dict())

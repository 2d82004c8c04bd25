"""
Database Schemas

Ride-hailing app schemas using Pydantic models.
- User -> "users" collection
- rides are stored as the client sends them, in "rides"

Request models leave their fields optional so that the handlers can
report missing values with the API's own 400 messages.
"""

from pydantic import BaseModel, Field
from typing import Any, Optional

class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Login email, unique across users")
    password: str = Field(..., description="Password, stored as given")
    role: str = Field("customer", description="customer|driver|admin")
    available: Optional[bool] = Field(None, description="Availability, drivers only")

# Request bodies

class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class AvailabilityUpdate(BaseModel):
    # Checked as a strict JSON boolean by the handler
    availability: Any = None

class RideStatusUpdate(BaseModel):
    status: Any = None

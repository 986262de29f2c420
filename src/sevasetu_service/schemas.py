"""Pydantic request/response models for the API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


# ---------------------------------------------------------------------------
# Task transitions
# ---------------------------------------------------------------------------


class SetPriceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    price: StrictInt


class AssignVleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    vle_id: StrictStr = Field(min_length=1)


class InformationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    message: StrictStr


class AcknowledgementRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    acknowledgement_number: StrictStr


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    rating: StrictInt
    comment: StrictStr | None = None


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


class RegisterUserRequest(BaseModel):
    """Body of POST /users. ``user_id`` is generated when omitted."""

    model_config = ConfigDict(extra="forbid")
    name: StrictStr
    role: Literal["customer", "vle", "government", "admin"]
    user_id: StrictStr | None = Field(default=None, min_length=1, max_length=64)
    mobile: StrictStr | None = None
    email: StrictStr | None = None
    pincode: StrictStr | None = None
    offered_services: list[StrictStr] | None = None


class AvailabilityRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    available: StrictBool


class OfferedServicesRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    service_ids: list[StrictStr]


class CreateServiceRequest(BaseModel):
    """Body of POST /services."""

    model_config = ConfigDict(extra="forbid")
    name: StrictStr
    customer_rate: StrictInt
    vle_rate: StrictInt
    government_fee: StrictInt
    is_variable: StrictBool
    parent_id: StrictStr | None = None
    service_id: StrictStr | None = Field(default=None, min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Wallets
# ---------------------------------------------------------------------------


class PaymentRequestCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    amount: StrictInt


# ---------------------------------------------------------------------------
# Camps
# ---------------------------------------------------------------------------


class CreateCampRequest(BaseModel):
    """Body of POST /camps."""

    model_config = ConfigDict(extra="forbid")
    name: StrictStr
    location: StrictStr
    date: StrictStr
    services: list[StrictStr] = Field(default_factory=list)
    vle_ids: list[StrictStr] = Field(default_factory=list)


class InviteVlesRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    vle_ids: list[StrictStr] = Field(min_length=1)


class CampStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: StrictStr


class CampPayoutRequest(BaseModel):
    """Per-VLE payout amounts keyed by VLE ID, plus the admin's share."""

    model_config = ConfigDict(extra="forbid")
    payouts: dict[str, StrictInt]
    admin_earnings: StrictInt


class CampInvitationResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    accept: StrictBool

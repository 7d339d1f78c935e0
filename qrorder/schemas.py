"""
Pydantic Schemas for Request/Response Validation

Request schemas are strict: unknown fields are rejected and numbers are
never coerced from strings. Response schemas are built from ORM rows.

Author: Khalil Bannouri
Version: 4.0.0
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from qrorder.models import OrderStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class StrictRequest(BaseModel):
    """Base for inbound payloads: unknown keys are an error."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class OrderItemCreate(StrictRequest):
    """Single line item in an order."""
    id: Optional[str] = Field(None, max_length=64, examples=["menu-item-uuid"])
    name: str = Field(..., min_length=1, max_length=200, strict=True, examples=["Margherita"])
    price: float = Field(..., ge=0, strict=True, allow_inf_nan=False, examples=[12.5])
    quantity: int = Field(..., gt=0, le=99, strict=True, examples=[2])
    notes: Optional[str] = Field(None, max_length=200)

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class OrderCreate(StrictRequest):
    """Normalized order submission."""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    table_id: Optional[str] = Field(None, min_length=1, max_length=64, strict=True)
    organization_id: Optional[str] = Field(None, min_length=1, max_length=64, strict=True)
    customer_name: Optional[str] = Field(None, max_length=100)
    customer_notes: Optional[str] = Field(None, max_length=500)
    session_id: Optional[str] = Field(None, min_length=1, max_length=100)

    @model_validator(mode="after")
    def require_table_or_organization(self) -> "OrderCreate":
        if not self.table_id and not self.organization_id:
            raise ValueError("Either table_id or organization_id is required")
        return self


class OrderStatusUpdate(StrictRequest):
    status: str = Field(..., min_length=1, examples=["preparing"])


class TableCallCreate(StrictRequest):
    organization_id: str = Field(..., min_length=1, max_length=64)
    table_id: str = Field(..., min_length=1, max_length=64)
    call_type: str = Field(default="service", min_length=1, max_length=30)
    customer_note: Optional[str] = Field(None, max_length=500)


class AIChatRequest(StrictRequest):
    message: str = Field(..., min_length=1, max_length=1000)
    session_id: str = Field(..., min_length=1, max_length=100)
    organization_id: str = Field(..., min_length=1, max_length=64)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TableInfo(BaseModel):
    table_number: str
    location_description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrganizationInfo(BaseModel):
    name: str
    logo_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    organization_id: str
    table_id: Optional[str]
    order_number: str
    items: List[dict[str, Any]]
    total_amount: float
    status: OrderStatus
    customer_name: Optional[str]
    customer_notes: Optional[str]
    session_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class OrderWithTableResponse(OrderResponse):
    table: Optional[TableInfo] = None


class OrderDetailResponse(OrderWithTableResponse):
    organization: Optional[OrganizationInfo] = None


class OrderCreateResponse(BaseModel):
    order: OrderResponse
    message: str


class OrderUpdateResponse(BaseModel):
    order: OrderResponse
    message: str


class OrderListResponse(BaseModel):
    orders: List[OrderWithTableResponse]


class OrderGetResponse(BaseModel):
    order: OrderDetailResponse


class TableCallResponse(BaseModel):
    id: str
    organization_id: str
    table_id: str
    call_type: str
    customer_note: Optional[str]
    status: str
    created_at: datetime
    table: Optional[TableInfo] = None

    model_config = ConfigDict(from_attributes=True)


class TableCallCreateResponse(BaseModel):
    call: TableCallResponse
    message: str


class TableCallListResponse(BaseModel):
    calls: List[TableCallResponse]


class AIChatResponse(BaseModel):
    response: str
    session_id: str


class WebhookTestResponse(BaseModel):
    success: bool
    config_id: str
    status_code: Optional[int] = None
    attempts: int
    error: Optional[str] = None


class DashboardSummary(BaseModel):
    organization_id: str
    total_orders: int
    active_orders: int
    today_orders: int
    today_revenue: float
    occupied_tables: int
    total_tables: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    ai_service: str
    webhook_backend: str
    timestamp: datetime

"""
SQLAlchemy Database Models

Multi-tenant QR table ordering:
- Organizations (tenants) with settings, menu and tables
- Orders with a kitchen status lifecycle
- Table calls, analytics events and AI conversations
- Outbound webhook configurations

Author: Khalil Bannouri
Version: 4.0.0
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    DateTime,
    Text,
    Enum,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from qrorder.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class OrganizationStatus(str, enum.Enum):
    """Tenant lifecycle. Tenants are suspended, never deleted."""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class SubscriptionTier(str, enum.Enum):
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class TableStatus(str, enum.Enum):
    """Occupancy of a physical table, projected from its orders."""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    DISABLED = "disabled"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"
    PAID = "paid"


ACTIVE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY)
TERMINAL_ORDER_STATUSES = (OrderStatus.SERVED, OrderStatus.CANCELLED, OrderStatus.PAID)


class AnalyticsEventType(str, enum.Enum):
    ORDER_CREATED = "order_created"
    ORDER_STATUS_UPDATED = "order_status_updated"
    AI_CHAT_MESSAGE = "ai_chat_message"
    TABLE_CALL_REQUESTED = "table_call_requested"


class Organization(Base):
    """
    A restaurant account on the platform; the unit of data isolation.
    """
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    logo_url = Column(String(500), nullable=True)
    brand_color = Column(String(20), nullable=False, default="#000000")
    address = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    working_hours = Column(JSON, nullable=False, default=dict)
    status = Column(
        Enum(OrganizationStatus),
        default=OrganizationStatus.PENDING,
        nullable=False,
        index=True
    )
    subscription_tier = Column(
        Enum(SubscriptionTier),
        default=SubscriptionTier.STARTER,
        nullable=False
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Organization {self.slug} - {self.status.value}>"


class OrganizationSettings(Base):
    """Per-tenant assistant configuration."""
    __tablename__ = "organization_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, unique=True
    )
    ai_personality = Column(String(50), nullable=False, default="friendly")
    ai_api_key = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    visible = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    category_id = Column(String(36), ForeignKey("menu_categories.id"), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    allergens = Column(JSON, nullable=False, default=list)
    available = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class RestaurantTable(Base):
    """
    A physical table, addressable through its QR code.

    ``status`` is derived from order activity; ``OrderService`` keeps it in
    sync on every order creation and terminal transition.
    """
    __tablename__ = "tables"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    table_number = Column(String(20), nullable=False)
    qr_code = Column(String(500), nullable=True)
    location_description = Column(String(255), nullable=True)
    status = Column(
        Enum(TableStatus),
        default=TableStatus.AVAILABLE,
        nullable=False
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Table {self.table_number} - {self.status.value}>"


class Order(Base):
    """
    Customer order placed from a table (or directly for a tenant).

    ``total_amount`` is fixed at creation time; later menu price changes never
    touch historical orders.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    table_id = Column(String(36), ForeignKey("tables.id"), nullable=True, index=True)
    order_number = Column(String(40), nullable=False, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)
    total_amount = Column(Float, nullable=False)
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # CUSTOMER
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_notes = Column(Text, nullable=True)
    session_id = Column(String(100), nullable=True, index=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    table = relationship("RestaurantTable", lazy="raise")
    organization = relationship("Organization", lazy="raise")

    def __repr__(self):
        return f"<Order {self.order_number} - {self.status.value}>"


class TableCall(Base):
    """A customer's request for staff attention at a table."""
    __tablename__ = "table_calls"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    table_id = Column(String(36), ForeignKey("tables.id"), nullable=False)
    call_type = Column(String(30), nullable=False, default="service")
    customer_note = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    table = relationship("RestaurantTable", lazy="raise")


class AnalyticsEvent(Base):
    """Append-only tenant fact. Rows are never updated or deleted."""
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    event_type = Column(String(50), nullable=False, index=True)
    event_data = Column(JSON, nullable=False, default=dict)
    session_id = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class WebhookConfig(Base):
    """Tenant-owned outbound notification target."""
    __tablename__ = "webhook_configs"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False, default="Webhook")
    url = Column(String(500), nullable=False)
    secret_key = Column(String(255), nullable=False)
    events = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    retry_enabled = Column(Boolean, nullable=False, default=True)
    max_retries = Column(Integer, nullable=False, default=3)
    timeout_seconds = Column(Float, nullable=False, default=10.0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<WebhookConfig {self.id} -> {self.url}>"


class AIConversation(Base):
    """Chat history of one anonymous customer session."""
    __tablename__ = "ai_conversations"
    __table_args__ = (
        UniqueConstraint("organization_id", "session_id", name="uq_ai_conversation_session"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    session_id = Column(String(100), nullable=False)
    messages = Column(JSON, nullable=False, default=list)
    conversation_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

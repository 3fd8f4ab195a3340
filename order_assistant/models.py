from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    JSON,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


SESSION_MODES = ("delivery", "takeaway", "dine_in", "support")
ORDER_MODES = ("delivery", "takeaway", "dine_in")
CHANNELS = ("whatsapp", "telegram", "instagram", "facebook", "web")
DELIVERY_TYPES = ("takeaway", "delivery", "on_site")


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    timezone = Column(String, nullable=True)  # IANA name, e.g. "Europe/Berlin"

    # Delivery settings (None = use config defaults)
    delivery_fee = Column(Float, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    delivery_radius_km = Column(Float, nullable=True)

    default_cancelable_before_hours = Column(Float, nullable=True)
    last_order_before_closing_minutes = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    branches = relationship("Branch", back_populates="business", cascade="all, delete-orphan")
    items = relationship("Item", back_populates="business", cascade="all, delete-orphan")


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    delivery_radius_km = Column(Float, nullable=True)
    # None = inherit from business
    last_order_before_closing_minutes = Column(Integer, nullable=True)

    business = relationship("Business", back_populates="branches")


class OpeningHours(Base):
    """
    One row per (owner, weekday). Owner is either a business or a branch;
    branch rows take precedence when a branch publishes any hours.
    """
    __tablename__ = "opening_hours"

    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(String, nullable=False)  # "business" | "branch"
    owner_id = Column(Integer, nullable=False)
    day_of_week = Column(String, nullable=False)  # "monday" ... "sunday"
    is_closed = Column(Boolean, nullable=False, default=False)
    open_time = Column(String, nullable=True)  # "HH:MM"
    close_time = Column(String, nullable=True)  # "HH:MM"

    __table_args__ = (
        UniqueConstraint("owner_type", "owner_id", "day_of_week", name="uq_opening_hours_owner_day"),
    )


class Item(Base):
    """
    Catalog entry. Read-only from the point of view of the ordering core.
    """
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    availability = Column(String, nullable=False, default="available")
    position = Column(Integer, nullable=False, default=0)  # catalog display order

    # Scheduled-only items (catering trays, cakes, ...)
    is_schedulable = Column(Boolean, nullable=False, default=False)
    min_schedule_hours = Column(Float, nullable=False, default=0)
    cancelable_before_hours = Column(Float, nullable=True)

    # Optional time-of-day window ("HH:MM") and weekday list
    available_from = Column(String, nullable=True)
    available_to = Column(String, nullable=True)
    days_available = Column(JSON, nullable=True)

    business = relationship("Business", back_populates="items")


class ChatSession(Base):
    """
    Durable per-customer conversation record. Never hard-deleted.
    """
    __tablename__ = "chat_sessions"

    id = Column(String, primary_key=True)  # UUID string
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(String, nullable=False)
    channel = Column(String, nullable=False)

    mode = Column(String, nullable=False, default="support")
    step = Column(String, nullable=False, default="start")

    # Mode-scoped scratch data, see schemas.drafts
    draft_payload = Column(JSON, nullable=False, default=dict)

    locked = Column(Boolean, nullable=False, default=False)
    assigned_employee_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_chat_sessions_lookup", "business_id", "customer_id", "channel"),
    )


class CartDraft(Base):
    """
    The customer's ongoing (not yet confirmed) order.

    items holds line snapshots: [{item_id, name, unit_price, quantity}, ...]
    """
    __tablename__ = "cart_drafts"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)  # None = owned by business
    customer_id = Column(String, nullable=False)

    items = Column(JSON, nullable=False, default=list)
    delivery_type = Column(String, nullable=True)  # takeaway / delivery / on_site
    delivery_fee = Column(Float, nullable=False, default=0.0)

    address = Column(Text, nullable=True)  # stored verbatim
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_label = Column(String, nullable=True)

    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(String, nullable=False, default="open", index=True)  # open / confirmed
    order_id = Column(String, ForeignKey("orders.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_cart_drafts_owner", "business_id", "branch_id", "customer_id", "status"),
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True)  # UUID string
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    customer_id = Column(String, nullable=False, index=True)
    session_id = Column(String, ForeignKey("chat_sessions.id"), nullable=True)

    # One order per draft; guards against double confirmation
    draft_id = Column(Integer, nullable=False, unique=True)

    status = Column(String, nullable=False, default="accepted", index=True)  # accepted / rejected / ...
    subtotal = Column(Float, nullable=False, default=0.0)
    delivery_fee = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)

    delivery_type = Column(String, nullable=False)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_label = Column(String, nullable=True)
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    __table_args__ = (
        Index("ix_orders_customer_status", "business_id", "customer_id", "status"),
    )

    @property
    def order_number(self) -> str:
        return self.id[:8].upper()


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=True)
    item_name = Column(String, nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    line_total = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
    item = relationship("Item")


class OrderStatusHistory(Base):
    """Append-only log, one row per status transition."""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)
    changed_by = Column(String, nullable=False)  # "customer", "employee:<id>", "system"
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="status_history")


class BotAction(Base):
    """Audit trail of what the assistant did in a session."""
    __tablename__ = "bot_actions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=True, index=True)
    action_type = Column(String, nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

# backend/courtbook/models/slot.py
"""
Slot templates, generated slot instances, and drop-in presentation data.

Regular bookings must match an active instance exactly. Drop-in
(``info_only_open_gym``) instances are shown to renters as information and
may block overlapping regular inventory.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..core.constants import DEFAULT_SLOT_INTERVAL_MINUTES
from ..database import Base


class SlotTemplate(Base):
    """Weekly rule that slot instances are generated from."""

    __tablename__ = "slot_templates"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    action_type = Column(String(40), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_interval_minutes = Column(
        Integer, nullable=False, default=DEFAULT_SLOT_INTERVAL_MINUTES
    )
    blocks_inventory = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_slot_template_weekday"),
        CheckConstraint("start_time < end_time", name="check_slot_template_time_order"),
        CheckConstraint("slot_interval_minutes > 0", name="check_slot_template_interval"),
    )


class SlotInstance(Base):
    __tablename__ = "slot_instances"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    template_id = Column(
        String(26), ForeignKey("slot_templates.id", ondelete="SET NULL"), nullable=True
    )
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    action_type = Column(String(40), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    blocks_inventory = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    pricing = relationship(
        "SlotPricing", back_populates="slot_instance", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint(
            "venue_id",
            "date",
            "start_time",
            "end_time",
            "action_type",
            name="uq_slot_instances_interval",
        ),
        Index("ix_slot_instances_venue_date", "venue_id", "date"),
        CheckConstraint("start_time < end_time", name="check_slot_instance_time_order"),
    )

    def __repr__(self) -> str:
        return (
            f"<SlotInstance {self.action_type} {self.date} {self.start_time}-{self.end_time} "
            f"active={self.is_active}>"
        )


class SlotModalContent(Base):
    """Explanatory copy shown for a slot action type."""

    __tablename__ = "slot_modal_content"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    action_type = Column(String(40), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    bullet_points = Column(JSON, nullable=False, default=list)
    cta_label = Column(String(100), nullable=True)


class SlotPricing(Base):
    __tablename__ = "slot_pricing"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    slot_instance_id = Column(
        String(26),
        ForeignKey("slot_instances.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    unit = Column(String(20), nullable=False, default="person")  # hour | person | session
    payment_method = Column(String(20), nullable=False, default="on_site")  # on_site | in_app

    slot_instance = relationship("SlotInstance", back_populates="pricing")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="check_slot_pricing_amount"),
        CheckConstraint("unit IN ('hour', 'person', 'session')", name="check_slot_pricing_unit"),
        CheckConstraint(
            "payment_method IN ('on_site', 'in_app')", name="check_slot_pricing_method"
        ),
    )

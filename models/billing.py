# models/billing.py
import enum
import uuid

from sqlalchemy import (
     Column, String, Text, Numeric, Integer, Boolean, DateTime, ForeignKey, JSON, Uuid, func,
)
from sqlalchemy.orm import relationship

from .base import Base


class BillingModel(str, enum.Enum):
     PERCENTAGE = "percentage"
     FIXED_PER_UNIT = "fixed_per_unit"
     TIERED = "tiered"


class SubscriptionStatus(str, enum.Enum):
     TRIAL = "trial"
     ACTIVE = "active"
     TRIAL_EXPIRED = "trial_expired"
     SUSPENDED = "suspended"
     CANCELLED = "cancelled"


class BillingPlan(Base):
     """
     Subscription plan offered to landlords.
     Maps to existing 'billing_plans' table in the database.
     """
     __tablename__ = "billing_plans"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     name = Column(String(100), nullable=False)
     description = Column(Text, nullable=True)
     price = Column(Numeric(12, 2), default=0, nullable=False)
     currency = Column(String(10), default="KES", nullable=False)
     billing_cycle = Column(String(20), default="monthly", nullable=False)
     billing_model = Column(String(30), default=BillingModel.FIXED_PER_UNIT.value, nullable=False)
     percentage_rate = Column(Numeric(5, 2), nullable=True)
     sms_credits_included = Column(Integer, default=0, nullable=False)
     max_properties = Column(Integer, nullable=True)
     max_units = Column(Integer, nullable=True)
     features = Column(JSON, nullable=True)
     is_active = Column(Boolean, default=True, nullable=False)

     def __repr__(self):
          return f"<BillingPlan(id={self.id}, name='{self.name}', model='{self.billing_model}')>"

     @property
     def is_percentage(self) -> bool:
          return self.billing_model == BillingModel.PERCENTAGE.value


class LandlordSubscription(Base):
     """
     A landlord's current plan and trial state. One row per landlord.
     Maps to existing 'landlord_subscriptions' table in the database.
     """
     __tablename__ = "landlord_subscriptions"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     landlord_id = Column(Uuid, nullable=False, unique=True, index=True)
     billing_plan_id = Column(Uuid, ForeignKey("billing_plans.id"), nullable=True)
     status = Column(String(20), default=SubscriptionStatus.TRIAL.value, nullable=False, index=True)

     trial_start_date = Column(DateTime(timezone=True), nullable=True)
     trial_end_date = Column(DateTime(timezone=True), nullable=True)
     subscription_start_date = Column(DateTime(timezone=True), nullable=True)
     next_billing_date = Column(DateTime(timezone=True), nullable=True)

     auto_renewal = Column(Boolean, default=False, nullable=False)
     sms_credits_balance = Column(Integer, default=0, nullable=False)

     created_at = Column(DateTime(timezone=True), server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

     plan = relationship("BillingPlan")

     def __repr__(self):
          return f"<LandlordSubscription(landlord_id={self.landlord_id}, status='{self.status}')>"


class TrialNotificationTemplate(Base):
     """
     E-mail sent to trial landlords a fixed number of days before expiry.
     Maps to existing 'trial_notification_templates' table in the database.
     """
     __tablename__ = "trial_notification_templates"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     template_name = Column(String(100), nullable=False)
     days_before_expiry = Column(Integer, nullable=False)
     subject = Column(String(255), nullable=False)
     html_content = Column(Text, nullable=False)
     is_active = Column(Boolean, default=True, nullable=False)

     def __repr__(self):
          return f"<TrialNotificationTemplate(name='{self.template_name}', days={self.days_before_expiry})>"

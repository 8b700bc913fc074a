from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from nashra.db.base_class import Base
from nashra.utils.timeutils import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255))
    full_name = Column(String(255))
    role = Column(String(50), default="registered", index=True)  # guest, registered, pro, admin
    subscription_tier = Column(String(50), default="free")
    language_preference = Column(String(10), default="en")
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    alerts = relationship("UserAlert", back_populates="user",
                          cascade="all, delete-orphan", passive_deletes=True)


class UserAlert(Base):
    __tablename__ = "user_alerts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), index=True, nullable=False)
    alert_type = Column(String(50), nullable=False, default="price")
    condition_operator = Column(String(20))  # gt, lt, eq
    condition_value = Column(Float)
    is_active = Column(Boolean, default=True)
    # Condition result of the previous evaluation; drives edge triggering
    is_triggered = Column(Boolean, default=False, nullable=False)
    last_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="alerts")
    company = relationship("Company", back_populates="alerts")

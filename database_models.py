from sqlalchemy import Column, Integer, String, Boolean, DateTime

from database import Base
from utils.shared_utils import utcnow


class User(Base):
    """
    Local mirror of an account created through the signup form.
    The upstream Jellyfin server stays the owner of the real account.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class TrialUser(Base):
    """Trial bookkeeping for a signed-up account."""
    __tablename__ = "trial_users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    signup_date = Column(DateTime, default=utcnow, nullable=False)
    expiry_date = Column(DateTime, nullable=False, index=True)
    is_expired = Column(Boolean, default=False, nullable=False)
    trial_duration_days = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class TrialSettings(Base):
    """Singleton row holding the admin-configured trial policy."""
    __tablename__ = "trial_settings"

    id = Column(Integer, primary_key=True, index=True)
    is_trial_mode_enabled = Column(Boolean, default=True, nullable=False)
    trial_duration_days = Column(Integer, default=7, nullable=False)
    expiry_action = Column(String, default="disable", nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

"""
SQLAlchemy models for the database.
Defines User, Interest, UserInterest and Match models.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    """User model; only the matchmaking projection is read by the core."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, nullable=True)
    name = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)  # generated silly name shown to strangers

    # Raw stored value, e.g. 'male', 'FEMALE', 'non-binary'; normalized on read
    gender = Column(String(32), nullable=True)

    # Paid status gates gender filters
    is_pro = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    interests = relationship("UserInterest", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_users_is_pro', 'is_pro'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, display_name={self.display_name}, is_pro={self.is_pro})>"


class Interest(Base):
    """Interest tag catalogue."""
    __tablename__ = "interests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), unique=True, nullable=False)

    users = relationship("UserInterest", back_populates="interest")

    def __repr__(self):
        return f"<Interest(id={self.id}, name={self.name})>"


class UserInterest(Base):
    """Interests a user currently declares."""
    __tablename__ = "user_interests"

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    interest_id = Column(Integer, ForeignKey("interests.id", ondelete="CASCADE"), primary_key=True)

    user = relationship("User", back_populates="interests")
    interest = relationship("Interest", back_populates="users")


class Match(Base):
    """
    One record per successful pairing. Append-only.

    Participants are stored as plain ids so guest pairings can be recorded too.
    """
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(32), unique=True, nullable=False)
    initiator_id = Column(String(64), nullable=False)
    joiner_id = Column(String(64), nullable=False)
    mode = Column(String(16), nullable=False)  # 'random' or 'interest'

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_matches_initiator_id', 'initiator_id'),
        Index('idx_matches_joiner_id', 'joiner_id'),
        Index('idx_matches_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<Match(room_id={self.room_id}, initiator_id={self.initiator_id}, joiner_id={self.joiner_id}, mode={self.mode})>"

from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from giverep.database import Base


class RepUser(Base):
    __tablename__ = "rep_users"

    id = Column(Integer, primary_key=True, index=True)
    twitter_handle = Column(String, unique=True, nullable=False, index=True)
    twitter_id = Column(String, nullable=True)
    follower_count = Column(Integer, default=0)
    profile_image_url = Column(String, nullable=True)
    total_reputation = Column(Integer, default=0, index=True)

    # Daily giving quota; points_used resets when quota_date is not today
    daily_quota = Column(Integer, default=3)
    points_used = Column(Integer, default=0)
    quota_date = Column(DateTime, default=datetime.utcnow)
    multiplier = Column(Integer, default=1)

    is_influencer = Column(Boolean, default=False)
    is_loyalty_program = Column(Boolean, default=False)
    loyalty_project_id = Column(String, nullable=True)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RepPoint(Base):
    __tablename__ = "rep_points"

    id = Column(Integer, primary_key=True, index=True)
    from_handle = Column(String, nullable=False)
    to_handle = Column(String, nullable=False, index=True)
    tweet_id = Column(String, nullable=False)
    tweet_url = Column(String, nullable=True)
    points = Column(Integer, default=1)
    influencer_bonus = Column(Boolean, default=False)
    from_loyalty_program_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("from_handle", "to_handle", "tweet_id", name="rep_points_unique_given"),)


class TrustUser(Base):
    __tablename__ = "trust_users"

    id = Column(Integer, primary_key=True, index=True)
    twitter_handle = Column(String, unique=True, nullable=False, index=True)
    twitter_id = Column(String, nullable=True)
    trusted_follower_count = Column(Integer, default=0, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

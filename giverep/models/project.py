from datetime import datetime
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from giverep.database import Base


class LoyaltyProject(Base):
    __tablename__ = "loyalty_projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    logo_url = Column(String, nullable=True)        # S3 URL when uploaded through the API
    banner_url = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    twitter_handle = Column(String, nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_incentivized = Column(Boolean, default=False, nullable=False)

    # Payout per tweet view, in whole tokens
    price_per_view = Column(Numeric(18, 10), default=0.0004)
    incentive_budget = Column(Numeric(20, 4), default=0)
    total_incentive_spent = Column(Numeric(20, 4), default=0)

    min_follower_count = Column(Integer, default=0)
    hashtags = Column(JSON, default=list)
    tag_ids = Column(JSON, default=list)

    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    password_hash = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("LoyaltyMember", back_populates="project", cascade="all, delete-orphan")
    rewards = relationship("LoyaltyReward", back_populates="project", cascade="all, delete-orphan")
    reward_config = relationship(
        "LoyaltyRewardConfig", back_populates="project", uselist=False, cascade="all, delete-orphan"
    )


class ProjectTag(Base):
    __tablename__ = "project_tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    visible = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

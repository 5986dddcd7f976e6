from datetime import datetime
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from giverep.database import Base


class LoyaltyReward(Base):
    __tablename__ = "loyalty_rewards"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("loyalty_projects.id", ondelete="CASCADE"), nullable=False)
    twitter_handle = Column(String, nullable=False, index=True)
    twitter_id = Column(String, nullable=True)
    token_type = Column(String, nullable=True)

    # Raw on-chain units; total payout is initial + adjust + manual
    initial_amount = Column(BigInteger, nullable=False, default=0)
    adjust_amount = Column(BigInteger, nullable=False, default=0)
    manual_adjustment = Column(BigInteger, nullable=False, default=0)

    notes = Column(Text, nullable=True)
    tags = Column(JSON, default=list)

    claimed = Column(Boolean, default=False, nullable=False)
    claimer = Column(String, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    claim_transaction_digest = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("LoyaltyProject", back_populates="rewards")

    __table_args__ = (UniqueConstraint("project_id", "twitter_handle", name="loyalty_rewards_project_handle_uc"),)

    @property
    def total_amount(self) -> int:
        return (self.initial_amount or 0) + (self.adjust_amount or 0) + (self.manual_adjustment or 0)


class LoyaltyRewardConfig(Base):
    __tablename__ = "loyalty_reward_config"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(
        Integer, ForeignKey("loyalty_projects.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    amount = Column(BigInteger, nullable=False, default=0)
    coin_type = Column(String, nullable=False)
    pool_object_id = Column(String, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("LoyaltyProject", back_populates="reward_config")


class ProjectCreatorScore(Base):
    __tablename__ = "project_creator_scores"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("loyalty_projects.id", ondelete="CASCADE"), nullable=False)
    twitter_handle = Column(String, nullable=False)
    relevance_score = Column(Integer, default=500)  # 0..1000
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("project_id", "twitter_handle", name="creator_score_unique"),)

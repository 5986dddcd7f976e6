from datetime import datetime
from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from giverep.database import Base


class LoyaltyMember(Base):
    __tablename__ = "loyalty_members"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("loyalty_projects.id", ondelete="CASCADE"), nullable=False)
    twitter_handle = Column(String, nullable=False, index=True)
    joined_at = Column(DateTime, default=datetime.utcnow)
    is_active = Column(Boolean, default=True, nullable=False)

    project = relationship("LoyaltyProject", back_populates="members")

    __table_args__ = (UniqueConstraint("project_id", "twitter_handle", name="loyalty_member_unique"),)


class LoyaltyMetrics(Base):
    __tablename__ = "loyalty_metrics"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("loyalty_projects.id", ondelete="CASCADE"), nullable=False)
    twitter_handle = Column(String, nullable=False)
    twitter_id = Column(String, nullable=True)
    tweet_count = Column(Integer, default=0)
    views = Column(BigInteger, default=0)
    likes = Column(BigInteger, default=0)
    retweets = Column(BigInteger, default=0)
    replies = Column(BigInteger, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("project_id", "twitter_handle", name="loyalty_metrics_unique"),)

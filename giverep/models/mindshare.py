from datetime import datetime
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from giverep.database import Base


class MindshareProject(Base):
    __tablename__ = "mindshare_projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    logo_url = Column(String, nullable=True)
    banner_url = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    twitter_handle = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    tag_ids = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    keywords = relationship("MindshareKeyword", back_populates="project", cascade="all, delete-orphan")
    tweets = relationship("MindshareTweet", back_populates="project", cascade="all, delete-orphan")
    metrics = relationship("MindshareMetrics", back_populates="project", cascade="all, delete-orphan")


class MindshareKeyword(Base):
    __tablename__ = "mindshare_keywords"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("mindshare_projects.id", ondelete="CASCADE"), nullable=False)
    keyword = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    project = relationship("MindshareProject", back_populates="keywords")


class MindshareTweet(Base):
    __tablename__ = "mindshare_tweets"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("mindshare_projects.id", ondelete="CASCADE"), nullable=False)
    keyword_id = Column(Integer, ForeignKey("mindshare_keywords.id", ondelete="SET NULL"), nullable=True)
    tweet_id = Column(String, nullable=False, index=True)
    user_handle = Column(String, nullable=False)
    user_name = Column(String, nullable=True)
    user_profile_image = Column(String, nullable=True)
    content = Column(Text, nullable=True)

    views = Column(BigInteger, default=0)
    likes = Column(BigInteger, default=0)
    retweets = Column(BigInteger, default=0)
    replies = Column(BigInteger, default=0)

    created_at = Column(DateTime, nullable=False)
    collected_at = Column(DateTime, default=datetime.utcnow)

    project = relationship("MindshareProject", back_populates="tweets")

    __table_args__ = (UniqueConstraint("project_id", "tweet_id", name="mindshare_tweet_unique"),)


class MindshareMetrics(Base):
    __tablename__ = "mindshare_metrics"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("mindshare_projects.id", ondelete="CASCADE"), nullable=False)
    tweet_count = Column(Integer, default=0)
    views = Column(BigInteger, default=0)
    likes = Column(BigInteger, default=0)
    retweets = Column(BigInteger, default=0)
    replies = Column(BigInteger, default=0)
    engagement_rate = Column(Float, default=0.0)
    share_percentage = Column(Float, default=0.0)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("MindshareProject", back_populates="metrics")

    __table_args__ = (
        UniqueConstraint("project_id", "start_date", "end_date", name="mindshare_metrics_period_unique"),
    )

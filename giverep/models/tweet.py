from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from giverep.database import Base


class Tweet(Base):
    __tablename__ = "tweets"

    id = Column(Integer, primary_key=True, index=True)
    tweet_id = Column(String, unique=True, nullable=False, index=True)
    author_handle = Column(String, nullable=False, index=True)
    author_id = Column(String, nullable=True)
    author_name = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    tweet_link = Column(String, nullable=True)

    views = Column(BigInteger, default=0)
    likes = Column(BigInteger, default=0)
    retweets = Column(BigInteger, default=0)
    replies = Column(BigInteger, default=0)

    created_at = Column(DateTime, nullable=True)
    collected_at = Column(DateTime, default=datetime.utcnow)

    mentions = relationship("TweetMention", back_populates="tweet", cascade="all, delete-orphan")


class TweetMention(Base):
    """A loyalty project handle (lowercase) that a tweet is eligible for."""

    __tablename__ = "tweet_mentions"

    id = Column(Integer, primary_key=True, index=True)
    tweet_pk = Column(Integer, ForeignKey("tweets.id", ondelete="CASCADE"), nullable=False)
    handle = Column(String, nullable=False, index=True)

    tweet = relationship("Tweet", back_populates="mentions")

    __table_args__ = (UniqueConstraint("tweet_pk", "handle", name="tweet_mention_unique"),)

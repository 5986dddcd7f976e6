from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from giverep.database import Base


class TwitterUserInfo(Base):
    __tablename__ = "twitter_user_info"

    id = Column(Integer, primary_key=True, index=True)
    handle = Column(String, unique=True, nullable=False, index=True)  # lowercase, no "@"
    twitter_id = Column(String, nullable=True)
    username = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)
    banner_url = Column(String, nullable=True)
    profile_url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)

    follower_count = Column(Integer, default=0)
    following_count = Column(Integer, default=0)
    tweet_count = Column(Integer, default=0)
    is_verified = Column(Boolean, default=False)
    is_blue_verified = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_updated_at = Column(DateTime, default=datetime.utcnow, index=True)

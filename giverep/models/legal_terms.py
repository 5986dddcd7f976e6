from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from giverep.database import Base

CURRENT_TERMS_VERSION = "2025-06-01"


class LegalTermsAgreement(Base):
    __tablename__ = "legal_terms_agreement"

    id = Column(Integer, primary_key=True, index=True)
    user_handle = Column(String, nullable=False, index=True)
    wallet_address = Column(String, nullable=False, index=True)
    agreed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    terms_version = Column(String, default=CURRENT_TERMS_VERSION, nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    __table_args__ = (UniqueConstraint("user_handle", "wallet_address", name="legal_terms_user_wallet_uc"),)

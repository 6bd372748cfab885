from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text

from app.platform.db.base import BaseModel


class WaitlistSignup(BaseModel):
    __tablename__ = "waitlist_emails"

    # Fernet ciphertext; only the hash is ever queried
    email = Column(Text, nullable=False)
    email_hash = Column(String(64), unique=True, nullable=False, index=True)

    verified = Column(Boolean, nullable=False, default=False, index=True)
    verification_token = Column(String(100), unique=True, nullable=True)
    verification_sent_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    unsubscribe_token = Column(String(100), unique=True, nullable=False)
    unsubscribed = Column(Boolean, nullable=False, default=False, index=True)
    unsubscribed_at = Column(DateTime(timezone=True), nullable=True)

    source = Column(String(50), nullable=True, index=True)
    referrer = Column(Text, nullable=True)
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(45), nullable=True)
    utm_source = Column(String(100), nullable=True)
    utm_medium = Column(String(100), nullable=True)
    utm_campaign = Column(String(100), nullable=True)
    utm_term = Column(String(100), nullable=True)
    utm_content = Column(String(100), nullable=True)
    ab_test_variant = Column(String(50), nullable=True, index=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (Index("idx_waitlist_emails_created_at", "created_at"),)

    def __repr__(self) -> str:
        return f"<WaitlistSignup(id='{self.id}', verified={self.verified}, unsubscribed={self.unsubscribed})>"

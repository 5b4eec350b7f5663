from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base

OTP_PURPOSES = ("REGISTER", "LOGIN", "RECOVERY", "PRIVATE_ENROLL")


class OTPRequest(Base):
    __tablename__ = "otp_requests"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(20), nullable=False, index=True)  # canonical 94XXXXXXXXX
    purpose = Column(String(20), nullable=False)
    otp_hash = Column(String(64), nullable=False)  # sha256(code + phone as received)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("phone", "purpose", name="uq_otp_requests_phone_purpose"),
        CheckConstraint(
            "purpose IN ('REGISTER', 'LOGIN', 'RECOVERY', 'PRIVATE_ENROLL')",
            name="check_otp_purpose"
        ),
        CheckConstraint("attempts >= 0", name="check_otp_attempts"),
        # Ids of replaced challenges must never be handed out again
        {"sqlite_autoincrement": True},
    )

    def __repr__(self):
        return f"<OTPRequest {self.purpose} {self.phone[-4:]}>"

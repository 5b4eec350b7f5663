import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    # May hold a legacy form: raw digits, 07XXXXXXXX or 7XXXXXXXX@phone.<domain>
    phone = Column(String(255), nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    roles = relationship("UserRole", back_populates="profile", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Profile {self.id} {self.first_name} {self.last_name}>"

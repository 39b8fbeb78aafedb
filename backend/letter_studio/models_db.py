import uuid
from sqlalchemy import (
    Column,
    String,
    ForeignKey,
    DateTime,
    Boolean,
    Integer,
    func,
    JSON,
    Index,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.ext.asyncio import AsyncAttrs

# Define the base class for declarative models with AsyncAttrs for proper async support
Base = declarative_base(cls=AsyncAttrs)

def generate_uuid():
    return str(uuid.uuid4())

class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=generate_uuid)
    external_id = Column(String, unique=True, index=True, nullable=True)
    email = Column(String, index=True, nullable=True)
    name = Column(String)
    location = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cover_letters = relationship("CoverLetter", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

class CoverLetter(Base):
    __tablename__ = "cover_letters"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    job_title = Column(String, nullable=True)
    template = Column(String, nullable=False, default="standard")
    # Serialized LetterContent: header, recipient, body, closing
    content = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="cover_letters")

    __table_args__ = (
        Index('ix_cover_letters_user_updated', 'user_id', 'updated_at'),
    )

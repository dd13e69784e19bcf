from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agencycomp.core.database import Base


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)

    # Carrier statement sub-producer code; statement rows are matched on it
    sub_producer_code = Column(String, unique=True, nullable=True, index=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    assignments = relationship("CompPlanAssignment", back_populates="team_member", cascade="all, delete-orphan")
    payouts = relationship("CompPayout", back_populates="team_member", cascade="all, delete-orphan")

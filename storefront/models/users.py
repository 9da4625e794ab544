# storefront/models/users.py
from sqlalchemy import Column, String, Date, DateTime, func
from storefront.database import Base

# Profile of an account managed by the hosted auth backend.
# The id is the identity's subject (`sub` claim); the role drives admin gating.
class User(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False, default="customer")
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    # Personal details edited from the profile page
    phone = Column(String(32), nullable=True)
    birth_date = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True) # male, female, other, prefer_not_to_say
    dni = Column(String(20), nullable=True) # National identity document number
    bio = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

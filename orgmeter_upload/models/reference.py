"""Reference records that CSV rows are resolved against."""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from orgmeter_upload.database import Base


class Advance(Base):
    """OrgMeter advance, referenced from CSV rows by its display id."""

    __tablename__ = "orgmeter_advances"

    id = Column(Integer, primary_key=True, index=True)
    id_text = Column(String(100), nullable=False, index=True)
    funder = Column(String(100), nullable=True)


class Syndicator(Base):
    """OrgMeter syndicator, referenced from CSV rows by name."""

    __tablename__ = "orgmeter_syndicators"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    funder = Column(String(100), nullable=True)
    sync_id = Column(String(100), nullable=True)  # internal syndicator id


class User(Base):
    """Application user, recorded as the creator of upload jobs."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

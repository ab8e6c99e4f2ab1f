# models.py
from __future__ import annotations

from sqlalchemy import Column, Text, DateTime, Integer, JSON, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CollectionDocument(Base):
    """One named collection, stored whole as a JSON list."""

    __tablename__ = "collections"
    name = Column(Text, primary_key=True)
    payload = Column(JSON, nullable=False)
    revision = Column(Integer, nullable=False, server_default=text("0"))
    updated_at = Column(DateTime, server_default=text("CURRENT_TIMESTAMP"))


def create_schema(bind) -> None:
    Base.metadata.create_all(bind=bind, checkfirst=True)

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text

from db import Base


class TableEntity(Base):
    __tablename__ = "table_entities"

    partition_key = Column(String, primary_key=True)
    row_key = Column(String, primary_key=True)
    data = Column(Text, nullable=False)
    last_updated = Column(DateTime)

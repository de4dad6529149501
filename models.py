# models.py
from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Text,
    DateTime,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    sessionmaker,
)

# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class InvoiceTemplate(Base):
    """
    A saved designer layout: the full wire payload (fields, items, images,
    positionData, components) stored as JSON under a unique name.
    """
    __tablename__ = "invoice_templates"
    __table_args__ = (UniqueConstraint("name", name="uq_invoice_templates_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def payload(self) -> dict:
        try:
            data = json.loads(self.payload_json or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @payload.setter
    def payload(self, value: dict) -> None:
        self.payload_json = json.dumps(value or {}, ensure_ascii=False)

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# -----------------------------
# Engine / Session factory
# -----------------------------
def make_engine(db_url: str, echo: bool = False):
    """
    Engine for the template store. For SQLite the parent folder of the file
    must already exist (create_app and db_init create it).
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


# -----------------------------
# Template save (insert or replace by name)
# -----------------------------
def save_template(session, name: str, payload: dict) -> InvoiceTemplate:
    row = session.execute(
        select(InvoiceTemplate).where(InvoiceTemplate.name == name)
    ).scalar_one_or_none()

    if row is None:
        row = InvoiceTemplate(name=name)
        session.add(row)
    row.payload = payload
    session.flush()  # ensure it has an id
    return row

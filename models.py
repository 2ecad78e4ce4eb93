from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class ExclusionScope(str, Enum):
    dashboard = "dashboard"
    transactions = "transactions"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Tag(Base, TimestampMixin):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tag_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="tag"
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    # Signed: negative is an expense, positive is income.
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    import_id: Mapped[Optional[str]] = mapped_column(String(64))
    tag_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tags.id", ondelete="SET NULL")
    )

    tag: Mapped[Optional["Tag"]] = relationship("Tag", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("user_id", "import_id", name="uq_txn_user_import"),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_tag_date", "user_id", "tag_id", "date"),
    )


class ExcludedTag(Base):
    __tablename__ = "excluded_tags"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    scope: Mapped[ExclusionScope] = mapped_column(
        SAEnum(ExclusionScope), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    tag: Mapped["Tag"] = relationship("Tag")

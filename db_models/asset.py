# db_models/asset.py
from datetime import datetime

from sqlalchemy import String, Text, Integer, BigInteger, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base


class AssetRow(Base):
    __tablename__ = "assets"

    # Derived from the asset number at creation; never changes afterwards
    id: Mapped[str] = mapped_column(String(100), primary_key=True)

    asset_number: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )

    # Reference fields (imported, never edited through the workflow)
    equipment_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    acquisition_date: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    acquisition_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    lifespan_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    factory: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Customer fields
    catalog_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    building: Mapped[str | None] = mapped_column(String(255), nullable=True)
    floor: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Reviewer fields: severity / urgency / spread, 1-5 or NULL
    g: Mapped[int | None] = mapped_column(Integer, nullable=True)
    u: Mapped[int | None] = mapped_column(Integer, nullable=True)
    t: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Workflow: unfilled / pending-review / approved / rejected
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="unfilled",
        server_default="unfilled",
    )
    input_by: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    assigned_to: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Optimistic concurrency token, stamped on every write
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Upload order is id order
    attachments: Mapped[list["AttachmentRow"]] = relationship(
        "AttachmentRow",
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by="AttachmentRow.id",
    )

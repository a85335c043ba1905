from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Numeric,
    TIMESTAMP,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


# =========================
# Farm
# =========================
class Farm(Base):
    __tablename__ = "farms"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    sectors = relationship(
        "IrrigationSector",
        back_populates="farm",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    irrigation_records = relationship(
        "IrrigationRecord",
        back_populates="farm",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========================
# IrrigationSector
# =========================
class IrrigationSector(Base):
    """
    A subdivision of a farm with its own irrigation equipment.
    Used as an optional analytics filter and as the breakdown key.
    """

    __tablename__ = "irrigation_sectors"

    id = Column(Integer, primary_key=True, autoincrement=True)

    farm_id = Column(
        Integer,
        ForeignKey("farms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String, nullable=False)  # "North Field", "Orchard B"

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    farm = relationship("Farm", back_populates="sectors")

    irrigation_records = relationship(
        "IrrigationRecord",
        back_populates="sector",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========================
# IrrigationRecord (EVENT TABLE)
# =========================
class IrrigationRecord(Base):
    """
    One irrigation event.

    nominal_amount is the planned volume and real_amount the delivered one,
    both in millimetres. Efficiency (real / nominal) is only defined for
    nominal_amount > 0; other rows still count toward sums and event counts.
    """

    __tablename__ = "irrigation_data"
    __table_args__ = (
        Index("idx_irrigation_farm_time", "farm_id", "start_time"),
        Index("idx_irrigation_sector_time", "irrigation_sector_id", "start_time"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    farm_id = Column(
        Integer,
        ForeignKey("farms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    irrigation_sector_id = Column(
        Integer,
        ForeignKey("irrigation_sectors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_time = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    end_time = Column(TIMESTAMP(timezone=True), nullable=False)

    nominal_amount = Column(Numeric(10, 2), nullable=False)  # mm
    real_amount = Column(Numeric(10, 2), nullable=False)  # mm

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    farm = relationship("Farm", back_populates="irrigation_records")
    sector = relationship("IrrigationSector", back_populates="irrigation_records")

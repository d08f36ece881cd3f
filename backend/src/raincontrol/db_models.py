"""SQLAlchemy ORM models for the command ledger, rain log, and settings."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for ORM models."""


class DeviceCommandModel(Base):
    """Audit record of one command issued to the controller."""

    __tablename__ = "device_commands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    command_type: Mapped[str] = mapped_column(String(50), nullable=False)
    command_data: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    response: Mapped[str | None] = mapped_column(String(500), nullable=True)


class RainLogModel(Base):
    """Append-only log of observed or actuated controller state."""

    __tablename__ = "rain_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    analog_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    digital_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_raining: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    servo_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    distance: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(200), nullable=True)


class SystemSettingModel(Base):
    """Named configuration value mirrored from the controller."""

    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    last_modified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

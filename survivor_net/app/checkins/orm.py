"""
ORM tables for the durable mirror.

    users         one row per participant (streak + status snapshot)
    checkins      one row per participant per UTC day
    danger_zones  one row per missing episode with a known location
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from survivor_net.app.core.database import Base


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_check_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_check_in_day_key: Mapped[Optional[str]] = mapped_column(Text)
    last_lat: Mapped[Optional[float]] = mapped_column(Float)
    last_lng: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown")
    missing_since: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class CheckInRow(Base):
    __tablename__ = "checkins"

    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    )
    day_key: Mapped[str] = mapped_column(Text, primary_key=True)
    checked_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    lat: Mapped[Optional[float]] = mapped_column(Float)
    lng: Mapped[Optional[float]] = mapped_column(Float)
    note: Mapped[Optional[str]] = mapped_column(String(180))


class DangerZoneRow(Base):
    __tablename__ = "danger_zones"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="streak-broken")
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    lat: Mapped[Optional[float]] = mapped_column(Float)
    lng: Mapped[Optional[float]] = mapped_column(Float)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

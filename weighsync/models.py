from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from weighsync.db import Base

ID_TYPE = String(64)


class WeighingTicket(Base):
    __tablename__ = "weighing_tickets"
    __table_args__ = (Index("ix_weighing_tickets_updated_at", "updated_at"),)

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True)
    ticket_number: Mapped[str] = mapped_column(Text, nullable=False, default="")
    vehicle_plate: Mapped[str] = mapped_column(Text, nullable=False, default="")
    vehicle_id: Mapped[str | None] = mapped_column(ID_TYPE)
    customer_id: Mapped[str | None] = mapped_column(ID_TYPE)
    customer_name: Mapped[str | None] = mapped_column(Text)
    product_id: Mapped[str | None] = mapped_column(ID_TYPE)
    product_name: Mapped[str | None] = mapped_column(Text)
    first_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    second_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    net_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit_price: Mapped[float | None] = mapped_column(Float)
    total_amount: Mapped[float | None] = mapped_column(Float)
    first_weigh_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    second_weigh_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text)
    first_weigh_image_url: Mapped[str | None] = mapped_column(Text)
    second_weigh_image_url: Mapped[str | None] = mapped_column(Text)
    operator_id: Mapped[str | None] = mapped_column(Text)
    operator_name: Mapped[str | None] = mapped_column(Text)
    station_id: Mapped[str] = mapped_column(Text, nullable=False, default="scale-station-01")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (Index("ix_customers_updated_at", "updated_at"),)

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, default="")
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    tax_code: Mapped[str | None] = mapped_column(Text)
    contact_person: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    customer_type: Mapped[str] = mapped_column(Text, nullable=False, default="individual")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (Index("ix_vehicles_updated_at", "updated_at"),)

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True)
    plate_number: Mapped[str] = mapped_column(Text, nullable=False, default="")
    vehicle_type: Mapped[str | None] = mapped_column(Text)
    tare_weight: Mapped[float | None] = mapped_column(Float)
    customer_id: Mapped[str | None] = mapped_column(ID_TYPE)
    customer_name: Mapped[str | None] = mapped_column(Text)
    driver_name: Mapped[str | None] = mapped_column(Text)
    driver_phone: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (Index("ix_products_updated_at", "updated_at"),)

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, default="")
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str | None] = mapped_column(Text, default="kg")
    default_price: Mapped[float | None] = mapped_column(Float)
    category: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Tenants(Base):
    __tablename__ = 'tenants'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    timezone = Column(Text, nullable=False, server_default=text("'UTC'"))
    work_schedule = Column(Text, nullable=False, server_default=text("'{}'"))
    slot_step_minutes = Column(Integer)
    max_concurrent = Column(Integer)
    home_visit_daily_quota = Column(Integer)
    base_lat = Column(Float)
    base_lng = Column(Float)
    is_active = Column(Boolean, nullable=False, server_default=text('1'))
    created_at = Column(DateTime, server_default=func.current_timestamp())

    services = relationship('Services', back_populates='tenant')
    staff_members = relationship('StaffMembers', back_populates='tenant')
    service_areas = relationship('ServiceAreas', back_populates='tenant')


class Services(Base):
    __tablename__ = 'services'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    duration_min = Column(Integer, nullable=False)
    buffer_before_min = Column(Integer, nullable=False, server_default=text('0'))
    buffer_after_min = Column(Integer, nullable=False, server_default=text('0'))
    home_visit_available = Column(Boolean, nullable=False, server_default=text('0'))
    # home visits take the whole day: one slot per staff member, only on a free day
    home_visit_full_day = Column(Boolean, nullable=False, server_default=text('0'))
    daily_quota_per_staff = Column(Integer)
    max_concurrent = Column(Integer)
    price = Column(Float, nullable=False, server_default=text('0'))
    is_active = Column(Boolean, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    description = Column(Text)

    tenant = relationship('Tenants', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class StaffMembers(Base):
    __tablename__ = 'staff_members'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True)
    work_schedule = Column(Text, nullable=False, server_default=text("'{}'"))
    id = Column(Integer, primary_key=True)
    display_name = Column(Text)
    is_active = Column(Boolean, nullable=False, server_default=text('1'))

    tenant = relationship('Tenants', back_populates='staff_members')
    bookings = relationship('Bookings', back_populates='staff')


t_staff_services = Table(
    'staff_services', metadata,
    Column('service_id', ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
    Column('staff_id', ForeignKey('staff_members.id', ondelete='CASCADE'), nullable=False),
    Column('is_active', Boolean, nullable=False, server_default=text('1')),
    UniqueConstraint('service_id', 'staff_id')
)


class CalendarOverrides(Base):
    __tablename__ = 'calendar_overrides'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    target_type = Column(Text, nullable=False)  # tenant / staff
    date_start = Column(Text, nullable=False)
    date_end = Column(Text, nullable=False)
    override_kind = Column(Text, nullable=False)  # day_off / custom_hours / block
    id = Column(Integer, primary_key=True)
    target_id = Column(Integer)
    reason = Column(Text)
    created_at = Column(DateTime, server_default=func.current_timestamp())


class ServiceAreas(Base):
    __tablename__ = 'service_areas'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    boundary_type = Column(Text, nullable=False)  # circle / polygon
    base_travel_surcharge = Column(Float, nullable=False, server_default=text('0'))
    per_km_surcharge = Column(Float, nullable=False, server_default=text('0'))
    available_services = Column(Text, nullable=False, server_default=text("'[]'"))
    is_active = Column(Boolean, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    center_lat = Column(Float)
    center_lng = Column(Float)
    radius_km = Column(Float)
    polygon = Column(Text)
    max_travel_distance_km = Column(Float)
    description = Column(Text)
    updated_at = Column(DateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    tenant = relationship('Tenants', back_populates='service_areas')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_staff_window', 'tenant_id', 'staff_id', 'occupied_start'),
        Index('ix_bookings_pool_window', 'tenant_id', 'service_id', 'occupied_start'),
    )

    booking_number = Column(Text, nullable=False, unique=True)
    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    date_start = Column(DateTime, nullable=False)
    date_end = Column(DateTime, nullable=False)
    occupied_start = Column(DateTime, nullable=False)
    occupied_end = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    buffer_before_minutes = Column(Integer, nullable=False, server_default=text('0'))
    buffer_after_minutes = Column(Integer, nullable=False, server_default=text('0'))
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    is_home_visit = Column(Boolean, nullable=False, server_default=text('0'))
    travel_surcharge_amount = Column(Float, nullable=False, server_default=text('0'))
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    id = Column(Integer, primary_key=True)
    staff_id = Column(ForeignKey('staff_members.id', ondelete='SET NULL'))
    customer_ref = Column(Text)
    location_lat = Column(Float)
    location_lng = Column(Float)
    location_address = Column(Text)
    service_area_id = Column(ForeignKey('service_areas.id', ondelete='SET NULL'))
    travel_distance_km = Column(Float)
    travel_duration_minutes = Column(Integer)
    surcharge_frozen_at = Column(DateTime)
    notes = Column(Text)
    cancel_reason = Column(Text)

    service = relationship('Services', back_populates='bookings')
    staff = relationship('StaffMembers', back_populates='bookings')
    history = relationship('BookingHistory', back_populates='booking', order_by='BookingHistory.id')


class BookingHistory(Base):
    __tablename__ = 'booking_history'

    booking_id = Column(ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    to_status = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    from_status = Column(Text)
    reason = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    booking = relationship('Bookings', back_populates='history')

"""
Create the booking schema in the configured database.

Usage: python scripts/init_db.py [--demo]

--demo also inserts a tenant with Mon-Fri 09:00-17:00 hours, one service
and one staff member, for trying the API locally.
"""

import argparse
import json

from sqlalchemy import select

from booking_engine.database import SessionLocal, engine
from booking_engine.models import Base, Services, StaffMembers, Tenants, t_staff_services


DEMO_HOURS = {day: {"start": "09:00", "end": "17:00"} for day in ("mon", "tue", "wed", "thu", "fri")}


def seed_demo(db) -> None:
    if db.execute(select(Tenants.id)).first():
        print("Tenants already present, skipping demo data")
        return

    tenant = Tenants(name="Demo Salon", timezone="UTC", work_schedule=json.dumps(DEMO_HOURS))
    db.add(tenant)
    db.flush()

    service = Services(
        tenant_id=tenant.id,
        name="Haircut",
        duration_min=30,
        buffer_after_min=10,
        home_visit_available=True,
        price=25.0,
    )
    staff = StaffMembers(tenant_id=tenant.id, display_name="Alex")
    db.add_all([service, staff])
    db.flush()

    db.execute(t_staff_services.insert().values(service_id=service.id, staff_id=staff.id))
    db.commit()
    print(f"Demo tenant {tenant.id}: service {service.id}, staff {staff.id}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--demo", action="store_true", help="insert demo tenant data")
    args = parser.parse_args()

    print(f"Using DB: {engine.url}")
    Base.metadata.create_all(engine)
    print("Schema ready.")

    if args.demo:
        db = SessionLocal()
        try:
            seed_demo(db)
        finally:
            db.close()


if __name__ == "__main__":
    main()

# booking_engine/routers/service_areas.py
# Editing an area never touches existing bookings: their surcharge is a snapshot

import json
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import ValidationError
from ..models import ServiceAreas, Services
from ..schemas.service_areas import (
    ServiceAreaCreate,
    ServiceAreaRead,
    ServiceAreaUpdate,
)
from ..services import booking_repository as repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/service-areas", tags=["service-areas"])


def _check_services(db: Session, tenant_id: int, service_ids: list[int]) -> None:
    """All listed services must exist, be active and belong to the tenant."""
    if not service_ids:
        return
    found = (
        db.query(Services.id)
        .filter(
            Services.tenant_id == tenant_id,
            Services.id.in_(service_ids),
            Services.is_active.is_(True),
        )
        .count()
    )
    if found != len(set(service_ids)):
        raise ValidationError("Some specified services do not exist or are inactive")


@router.get("/", response_model=list[ServiceAreaRead])
def list_service_areas(
    tenant_id: int,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    with repo.store_errors(db):
        return repo.get_service_areas(db, tenant_id, include_inactive=include_inactive)


@router.post("/", response_model=ServiceAreaRead, status_code=status.HTTP_201_CREATED)
def create_service_area(
    tenant_id: int,
    data: ServiceAreaCreate,
    db: Session = Depends(get_db),
):
    with repo.store_errors(db):
        repo.get_tenant(db, tenant_id)
        _check_services(db, tenant_id, data.available_services)

        payload = data.model_dump(exclude={"polygon", "available_services"})
        obj = ServiceAreas(
            tenant_id=tenant_id,
            polygon=json.dumps(data.polygon) if data.polygon else None,
            available_services=json.dumps(sorted(set(data.available_services))),
            **payload,
        )
        db.add(obj)
        db.commit()
        db.refresh(obj)
    logger.info(f"Service area {obj.id} created for tenant {tenant_id}")
    return obj


@router.patch("/{id}", response_model=ServiceAreaRead)
def update_service_area(
    tenant_id: int,
    id: int,
    data: ServiceAreaUpdate,
    db: Session = Depends(get_db),
):
    with repo.store_errors(db):
        obj = repo.get_service_area(db, tenant_id, id)
        updates = data.model_dump(exclude_unset=True, exclude={"boundary", "available_services"})

        if data.available_services is not None:
            _check_services(db, tenant_id, data.available_services)
            updates["available_services"] = json.dumps(sorted(set(data.available_services)))

        if data.boundary is not None:
            boundary = data.boundary
            updates.update(
                boundary_type=boundary.boundary_type,
                center_lat=boundary.center_lat,
                center_lng=boundary.center_lng,
                radius_km=boundary.radius_km,
                polygon=json.dumps(boundary.polygon) if boundary.polygon else None,
            )

        for key, value in updates.items():
            setattr(obj, key, value)
        db.commit()
        db.refresh(obj)
    logger.info(f"Service area {id} updated for tenant {tenant_id}: {sorted(updates)}")
    return obj

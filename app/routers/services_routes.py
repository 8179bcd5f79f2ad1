# app/routers/services_routes.py

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlmodel import Session, select

from app.db import get_session
from app.models import Service, BookingService
from app.schemas import (
    ServiceCreate,
    ServiceUpdate,
    ServicePublic,
    ServiceReorder,
    ServiceCategory,
)
from app.auth import get_current_user
from app.deps import require_salon_owner, get_salon_or_404

router = APIRouter(
    prefix="/services",
    tags=["services"],
)


def get_service_or_404(session: Session, service_id: int) -> Service:
    service = session.get(Service, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail=f"Service with ID {service_id} not found")
    return service


@router.post("", response_model=ServicePublic, status_code=201)
def create_service(
    service: ServiceCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_owner(session, current_user, service.salon_id)

    order = service.order
    if order is None:
        max_order = session.exec(
            select(func.max(Service.order)).where(Service.salon_id == service.salon_id)
        ).one()
        order = (max_order or 0) + 1

    db_service = Service(
        salon_id=service.salon_id,
        name=service.name,
        description=service.description,
        price=service.price,
        duration=service.duration,
        category=service.category.value,
        order=order,
    )
    session.add(db_service)
    session.commit()
    session.refresh(db_service)
    return db_service


@router.get("/salon/{salon_id}", response_model=List[ServicePublic])
def list_salon_services(
    salon_id: int,
    category: Optional[ServiceCategory] = None,
    include_inactive: bool = False,
    session: Session = Depends(get_session),
):
    get_salon_or_404(session, salon_id)

    stmt = select(Service).where(Service.salon_id == salon_id)
    if not include_inactive:
        stmt = stmt.where(Service.is_active == True)  # noqa: E712
    if category is not None:
        stmt = stmt.where(Service.category == category.value)

    return session.exec(stmt.order_by(Service.category, Service.order, Service.id)).all()


@router.post("/salon/{salon_id}/reorder", response_model=List[ServicePublic])
def reorder_services(
    salon_id: int,
    body: ServiceReorder,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_owner(session, current_user, salon_id)

    services = session.exec(
        select(Service)
        .where(Service.salon_id == salon_id)
        .where(Service.id.in_(body.service_ids))
    ).all()
    by_id = {s.id: s for s in services}
    if len(by_id) != len(set(body.service_ids)):
        raise HTTPException(status_code=422, detail="Some services do not belong to this salon")

    for index, service_id in enumerate(body.service_ids):
        by_id[service_id].order = index + 1
        session.add(by_id[service_id])
    session.commit()

    return session.exec(
        select(Service).where(Service.salon_id == salon_id).order_by(Service.order, Service.id)
    ).all()


@router.get("/{service_id}", response_model=ServicePublic)
def get_service(service_id: int, session: Session = Depends(get_session)):
    return get_service_or_404(session, service_id)


@router.patch("/{service_id}", response_model=ServicePublic)
def update_service(
    service_id: int,
    changes: ServiceUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    service = get_service_or_404(session, service_id)
    require_salon_owner(session, current_user, service.salon_id)

    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    if data.get("category") is not None:
        data["category"] = data["category"].value
    for key, value in data.items():
        setattr(service, key, value)

    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.patch("/{service_id}/toggle-active", response_model=ServicePublic)
def toggle_service_active(
    service_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    service = get_service_or_404(session, service_id)
    require_salon_owner(session, current_user, service.salon_id)

    service.is_active = not service.is_active
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.delete("/{service_id}", status_code=204)
def delete_service(
    service_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    service = get_service_or_404(session, service_id)
    require_salon_owner(session, current_user, service.salon_id)

    booked = session.exec(
        select(BookingService).where(BookingService.service_id == service_id)
    ).first()
    if booked is not None:
        # booked services stay for history and are only hidden
        service.is_active = False
        session.add(service)
    else:
        session.delete(service)
    session.commit()

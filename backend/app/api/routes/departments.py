"""
Department catalog API.
Departments and the requirement definitions events can request from them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import enforce_department_scope, require_admin
from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.department import Department, DepartmentRequirement, RequirementType
from app.models.user import User
from app.schemas.departments import (
    DepartmentCreateRequest,
    DepartmentResponse,
    DepartmentVisibilityRequest,
    RequirementCreateRequest,
    RequirementResponse,
    RequirementUpdateRequest,
)
from app.services.activity_log_service import activity_log_service

router = APIRouter(prefix="/departments", tags=["Departments"])
logger = get_logger("departments")


async def _get_department(db: AsyncSession, department_id: int) -> Department:
    department = await db.get(Department, department_id)
    if department is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return department


def _assert_manage(user: User, department: Department) -> None:
    enforce_department_scope(
        user,
        department.name,
        message="Access denied - you can only manage your own department requirements",
    )


async def _get_requirement(db: AsyncSession, department: Department, requirement_id: int) -> DepartmentRequirement:
    row = await db.execute(
        select(DepartmentRequirement).where(
            DepartmentRequirement.id == requirement_id,
            DepartmentRequirement.department_id == department.id,
        )
    )
    requirement = row.scalar_one_or_none()
    if requirement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Requirement not found")
    return requirement


def _serialize(department: Department) -> DepartmentResponse:
    return DepartmentResponse.model_validate(department)


@router.get("/")
async def list_departments(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    rows = await db.execute(select(Department).order_by(Department.name.asc()))
    return success_envelope([_serialize(item) for item in rows.scalars().all()])


@router.get("/visible")
async def list_visible_departments(db: AsyncSession = Depends(get_db)):
    rows = await db.execute(
        select(Department).where(Department.is_visible.is_(True)).order_by(Department.name.asc())
    )
    return success_envelope([_serialize(item) for item in rows.scalars().all()])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_department(
    payload: DepartmentCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    existing = await db.execute(select(Department.id).where(Department.name == payload.name))
    if existing.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Department already exists")

    department = Department(name=payload.name, is_visible=payload.is_visible)
    db.add(department)
    await db.flush()
    await activity_log_service.log(
        db,
        action="create_department",
        actor=current_user,
        description=f"Created department {department.name}",
        entity_type="department",
        entity_id=department.id,
    )
    await db.commit()
    await db.refresh(department, ["requirements"])
    logger.info("department_created", department=department.name, by=current_user.id)
    return success_envelope(_serialize(department), message="Department created successfully", status_code=201)


# ── Requirement catalog ──

@router.get("/{department_id}/requirements")
async def list_requirements(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = await _get_department(db, department_id)
    _assert_manage(current_user, department)
    return success_envelope([RequirementResponse.model_validate(item) for item in department.requirements])


@router.post("/{department_id}/requirements", status_code=status.HTTP_201_CREATED)
async def add_requirement(
    department_id: int,
    payload: RequirementCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = await _get_department(db, department_id)
    _assert_manage(current_user, department)

    is_physical = payload.type == RequirementType.physical
    requirement = DepartmentRequirement(
        department_id=department.id,
        text=payload.text,
        type=payload.type.value,
        total_quantity=(payload.total_quantity or 1) if is_physical else None,
        is_active=payload.is_active,
        is_available=payload.is_available,
        responsible_person=None if is_physical else payload.responsible_person,
    )
    db.add(requirement)
    await db.commit()
    logger.info("requirement_added", department=department.name, requirement_id=requirement.id)
    return success_envelope(
        RequirementResponse.model_validate(requirement),
        message="Requirement added successfully",
        status_code=201,
    )


@router.put("/{department_id}/requirements/{requirement_id}")
async def update_requirement(
    department_id: int,
    requirement_id: int,
    payload: RequirementUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = await _get_department(db, department_id)
    _assert_manage(current_user, department)
    requirement = await _get_requirement(db, department, requirement_id)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("text") is not None:
        requirement.text = changes["text"].strip()
    if changes.get("type") is not None:
        requirement.type = RequirementType(changes["type"]).value
    for field in ("total_quantity", "is_active", "is_available", "responsible_person"):
        if field in changes:
            setattr(requirement, field, changes[field])
    await db.commit()
    return success_envelope(RequirementResponse.model_validate(requirement), message="Requirement updated successfully")


@router.put("/{department_id}/requirements/{requirement_id}/toggle")
async def toggle_requirement(
    department_id: int,
    requirement_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = await _get_department(db, department_id)
    _assert_manage(current_user, department)
    requirement = await _get_requirement(db, department, requirement_id)
    requirement.is_active = not requirement.is_active
    await db.commit()
    return success_envelope(
        RequirementResponse.model_validate(requirement),
        message="Requirement status toggled successfully",
    )


@router.delete("/{department_id}/requirements/{requirement_id}")
async def delete_requirement(
    department_id: int,
    requirement_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = await _get_department(db, department_id)
    _assert_manage(current_user, department)
    requirement = await _get_requirement(db, department, requirement_id)
    await db.delete(requirement)
    await db.commit()
    logger.info("requirement_deleted", department=department.name, requirement_id=requirement_id)
    return success_envelope({"id": requirement_id}, message="Requirement deleted successfully")


# ── Department admin ──

@router.put("/{department_id}/visibility")
async def set_visibility(
    department_id: int,
    payload: DepartmentVisibilityRequest,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    department = await _get_department(db, department_id)
    department.is_visible = payload.is_visible
    await db.commit()
    return success_envelope(_serialize(department), message="Department visibility updated")


@router.delete("/{department_id}")
async def delete_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    department = await _get_department(db, department_id)
    name = department.name
    await db.delete(department)
    await activity_log_service.log(
        db,
        action="delete_department",
        actor=current_user,
        description=f"Deleted department {name}",
        entity_type="department",
        entity_id=department_id,
    )
    await db.commit()
    logger.info("department_deleted", department=name, by=current_user.id)
    return success_envelope({"id": department_id}, message="Department deleted successfully")

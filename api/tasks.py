import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import Application, StaffTask
from schemas.task import TaskCreate, TaskUpdate

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

MSG_TASK_NOT_FOUND = "Task not found"


def _task_to_response(t: StaffTask) -> dict[str, Any]:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "status": t.status,
        "priority": t.priority,
        "dueAt": t.due_at.isoformat() if t.due_at else None,
        "assignedTo": t.assigned_to,
        "applicationId": t.application_id,
        "createdAt": t.created_at.isoformat() if t.created_at else None,
        "updatedAt": t.updated_at.isoformat() if t.updated_at else None,
    }


async def _check_application(db: AsyncSession, application_id: Optional[str]) -> None:
    if application_id is None:
        return
    found = await db.execute(select(Application.id).where(Application.id == application_id))
    if found.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail=f"Unknown application {application_id}")


async def _get_task_or_404(db: AsyncSession, task_id: str) -> StaffTask:
    result = await db.execute(select(StaffTask).where(StaffTask.id == task_id))
    task = result.scalar_one_or_none()
    if not task:
        raise HTTPException(status_code=404, detail=MSG_TASK_NOT_FOUND)
    return task


@router.get("", response_model=list[dict])
async def list_tasks(
    status: Optional[str] = Query(None),
    application_id: Optional[str] = Query(None, alias="applicationId"),
    db: AsyncSession = Depends(get_db),
):
    query = select(StaffTask)
    if status:
        query = query.where(StaffTask.status == status)
    if application_id:
        query = query.where(StaffTask.application_id == application_id)
    result = await db.execute(query.order_by(StaffTask.due_at.is_(None), StaffTask.due_at, StaffTask.created_at))
    return [_task_to_response(t) for t in result.scalars().all()]


@router.get("/{task_id}", response_model=dict)
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)):
    return _task_to_response(await _get_task_or_404(db, task_id))


@router.post("", response_model=dict, status_code=201)
async def create_task(body: TaskCreate, db: AsyncSession = Depends(get_db)):
    await _check_application(db, body.application_id)
    now = datetime.now(timezone.utc)
    task = StaffTask(
        id=str(uuid.uuid4()),
        title=body.title,
        description=body.description,
        status=body.status,
        priority=body.priority,
        due_at=body.due_at,
        assigned_to=body.assigned_to,
        application_id=body.application_id,
        created_at=now,
        updated_at=now,
    )
    db.add(task)
    await db.flush()
    return _task_to_response(task)


@router.patch("/{task_id}", response_model=dict)
async def update_task(task_id: str, body: TaskUpdate, db: AsyncSession = Depends(get_db)):
    task = await _get_task_or_404(db, task_id)
    changes = body.model_dump(exclude_unset=True, by_alias=False)
    if "application_id" in changes:
        await _check_application(db, changes["application_id"])
    for attr, value in changes.items():
        setattr(task, attr, value)
    task.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _task_to_response(task)


@router.delete("/{task_id}", status_code=204)
async def delete_task(task_id: str, db: AsyncSession = Depends(get_db)):
    task = await _get_task_or_404(db, task_id)
    await db.delete(task)
    await db.flush()
    return None

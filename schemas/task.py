from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

TaskStatus = Literal["open", "in_progress", "done"]
TaskPriority = Literal["low", "normal", "high", "urgent"]


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = "open"
    priority: TaskPriority = "normal"
    due_at: Optional[datetime] = Field(None, alias="dueAt")
    assigned_to: Optional[str] = Field(None, alias="assignedTo")
    application_id: Optional[str] = Field(None, alias="applicationId")

    model_config = {"populate_by_name": True}


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_at: Optional[datetime] = Field(None, alias="dueAt")
    assigned_to: Optional[str] = Field(None, alias="assignedTo")
    application_id: Optional[str] = Field(None, alias="applicationId")

    model_config = {"populate_by_name": True}

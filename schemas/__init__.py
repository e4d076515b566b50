from schemas.application import (
    ApplicationFinalize,
    ApplicationStatusUpdate,
    DocumentCreate,
    DocumentUpdate,
)
from schemas.lender import (
    LenderCreate,
    LenderUpdate,
    ProductCreate,
    ProductMatchSchema,
    ProductUpdate,
    RuleResultSchema,
)
from schemas.task import TaskCreate, TaskUpdate

__all__ = [
    "ApplicationFinalize",
    "ApplicationStatusUpdate",
    "DocumentCreate",
    "DocumentUpdate",
    "LenderCreate",
    "LenderUpdate",
    "ProductCreate",
    "ProductMatchSchema",
    "ProductUpdate",
    "RuleResultSchema",
    "TaskCreate",
    "TaskUpdate",
]

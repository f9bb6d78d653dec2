from enum import Enum
from pydantic import BaseModel
from typing import Any, Optional

class ToastVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"

class Toast(BaseModel):
    title: str
    description: Optional[str] = None
    variant: ToastVariant = ToastVariant.DEFAULT

class MutationResponse(BaseModel):
    """Outcome of a mutation: the toast to show and whatever the mutation produced."""
    toast: Toast
    data: Optional[Any] = None

def success(title: str, description: Optional[str] = None, data: Any = None) -> MutationResponse:
    return MutationResponse(toast=Toast(title=title, description=description), data=data)

def failure_toast(description: str, title: str = "Error") -> Toast:
    return Toast(title=title, description=description, variant=ToastVariant.DESTRUCTIVE)

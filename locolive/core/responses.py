from typing import Generic, List, TypeVar, Optional
from pydantic import BaseModel

T = TypeVar("T")

class ResponseBase(BaseModel, Generic[T]):
    data: Optional[T] = None
    message: Optional[str] = None
    success: bool = True

class StandardResponse(ResponseBase[T]):
    pass

class Page(BaseModel, Generic[T]):
    items: List[T]
    limit: int
    offset: int

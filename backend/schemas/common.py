from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


# Base configuration: camelCase on the wire, snake_case in Python, ORM compatible
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Success envelope shared by all JSON endpoints
class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ApiListResponse(BaseModel, Generic[T]):
    success: bool = True
    count: int
    data: List[T]


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class ApiPageResponse(ApiListResponse[T], Generic[T]):
    pagination: Optional[Pagination] = None

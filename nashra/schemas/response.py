from typing import Generic, List, TypeVar, Optional
from pydantic import BaseModel, Field

T = TypeVar("T")

class Response(BaseModel, Generic[T]):
    code: int = 0
    msg: str = "success"
    data: Optional[T] = None
    total: Optional[int] = None

    @classmethod
    def success(cls, data: T = None, msg: str = "success", total: int = None):
        return cls(code=0, msg=msg, data=data, total=total)

    @classmethod
    def error(cls, code: int = -1, msg: str = "error", data: T = None):
        return cls(code=code, msg=msg, data=data)


class SyncResults(BaseModel):
    stocksUpdated: int = 0
    newsAdded: int = 0
    errors: List[str] = Field(default_factory=list)


class SyncResponse(BaseModel):
    """Body returned by the cron and admin refresh endpoints."""
    success: bool
    timestamp: str
    results: SyncResults

    @classmethod
    def from_result(cls, result, timestamp: str):
        return cls(
            success=result.success,
            timestamp=timestamp,
            results=SyncResults(
                stocksUpdated=result.stocks_updated,
                newsAdded=result.news_added,
                errors=list(result.errors),
            ),
        )


class SyncError(BaseModel):
    success: bool = False
    error: str
    timestamp: str


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"

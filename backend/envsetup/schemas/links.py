from pydantic import BaseModel


class OpenUrlRequest(BaseModel):
    url: str | None = None


class OpenUrlResponse(BaseModel):
    success: bool
    error: str | None = None

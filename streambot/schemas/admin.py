from typing import Optional

from pydantic import BaseModel, Field


class AttendanceRequest(BaseModel):
    phone: str = Field(..., min_length=8)
    blocked_by: Optional[str] = None


class AdminActionResponse(BaseModel):
    success: bool
    message: str
    phone: Optional[str] = None


class KnowledgeEntryCreate(BaseModel):
    category: str = Field(..., pattern="^(prospeccao|suporte|geral)$")
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    keywords: Optional[str] = None


class KnowledgeEntryResponse(BaseModel):
    id: str
    category: str
    title: str
    active: bool

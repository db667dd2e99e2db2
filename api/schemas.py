"""Request bodies.

Field names follow the JSON the dashboard sends (camelCase).
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    name: str = ""
    email: str = ""


class EmailRequest(BaseModel):
    email: str = ""


class DomainCreate(BaseModel):
    name: str = ""
    domainUrl: str = ""


class DomainUpdate(BaseModel):
    name: Optional[str] = None
    domainUrl: Optional[str] = None


class PromptSetCreate(BaseModel):
    name: str = ""
    prompts: List[Any] = Field(default_factory=list)
    intentCategories: Optional[List[str]] = None


class PromptSetUpdate(BaseModel):
    name: Optional[str] = None
    prompts: Optional[List[Any]] = None
    intentCategories: Optional[List[str]] = None


class GeneratePromptsRequest(BaseModel):
    keyword: str = ""
    categories: Optional[List[str]] = None


class TrackingConfigCreate(BaseModel):
    domainId: str = ""
    promptSetId: str = ""
    interval: Optional[str] = None


class TrackingConfigUpdate(BaseModel):
    interval: Optional[str] = None


class StartRunRequest(BaseModel):
    configId: Optional[str] = None


class FaviconRequest(BaseModel):
    domains: List[str] = Field(default_factory=list)


class TeamUpdate(BaseModel):
    name: str = ""


class MemberRoleUpdate(BaseModel):
    memberId: str = ""
    role: str = ""


class InvitationCreate(BaseModel):
    email: str = ""
    role: str = "member"


class InvitationAccept(BaseModel):
    token: str = ""


class CheckoutRequest(BaseModel):
    planId: str = ""


class ImpersonateRequest(BaseModel):
    teamId: str = ""


class ArticleCreate(BaseModel):
    title: str = ""
    excerpt: Optional[str] = None
    content: str = ""
    coverImage: Optional[str] = None
    published: bool = False


class ArticleUpdate(BaseModel):
    title: Optional[str] = None
    excerpt: Optional[str] = None
    content: Optional[str] = None
    coverImage: Optional[str] = None
    published: Optional[bool] = None


class TranslateRequest(BaseModel):
    locales: List[str] = Field(default_factory=list)


def changes(body: BaseModel) -> Dict[str, Any]:
    """Only the fields the client actually sent."""
    return body.model_dump(exclude_unset=True)

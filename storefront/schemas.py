"""
Pydantic schemas for request/response validation.

Request fields the handlers must check themselves (to answer 400 with a
specific message rather than a generic parse error) are declared Optional.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CheckProviderRequest(BaseModel):
    email: Optional[str] = None


class ThemeCreateRequest(BaseModel):
    name: Optional[str] = None
    primary_color: Optional[str] = Field(None, alias="primaryColor")
    primary_hover_color: Optional[str] = Field(None, alias="primaryHoverColor")
    interactive_color: Optional[str] = Field(None, alias="interactiveColor")
    button_color: Optional[str] = Field(None, alias="buttonColor")
    button_hover_color: Optional[str] = Field(None, alias="buttonHoverColor")

    model_config = ConfigDict(populate_by_name=True)


class ThemeUpdateRequest(ThemeCreateRequest):
    id: Optional[str] = None


class ThemeActivateRequest(BaseModel):
    id: Optional[str] = None
    # Retry only the activation step after a partial failure
    resume: bool = False


class SendMessageRequest(BaseModel):
    to: Optional[str] = None
    message: Optional[str] = None


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error description")


class SuccessResponse(BaseModel):
    success: bool = True


class PublicUser(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str = "customer"


class RegisterResponse(BaseModel):
    success: bool
    message: str
    user: Optional[PublicUser] = None


class LoginResponse(BaseModel):
    success: bool
    token: str
    user: PublicUser


class CheckProviderResponse(BaseModel):
    is_google_user: bool = Field(..., serialization_alias="isGoogleUser")
    user_exists: bool = Field(..., serialization_alias="userExists")


class ProfileResponse(BaseModel):
    profile: Dict[str, Any]


class ThemeResponse(BaseModel):
    id: str
    name: str
    primary_color: str
    primary_hover_color: str
    interactive_color: str
    button_color: str
    button_hover_color: str
    is_active: bool
    is_default: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ThemeListResponse(BaseModel):
    data: List[ThemeResponse] = Field(default_factory=list)


class ThemeCreateResponse(BaseModel):
    data: ThemeResponse


class MessageResponse(BaseModel):
    """A row of the message log, serialized with its column names."""
    id: int
    message_id: Optional[str] = None
    from_number: str
    customer_name: Optional[str] = None
    message_text: str
    message_type: str
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationResponse(BaseModel):
    phone_number: str = Field(..., serialization_alias="phoneNumber")
    customer_name: Optional[str] = Field(None, serialization_alias="customerName")
    last_message: str = Field(..., serialization_alias="lastMessage")
    last_message_time: datetime = Field(..., serialization_alias="lastMessageTime")
    unread_count: int = Field(0, ge=0, serialization_alias="unreadCount")

    model_config = ConfigDict(from_attributes=True)


class MessagesListResponse(BaseModel):
    """
    Response model for the message list.

    degraded is true when the store could not be read and the lists are
    empty for that reason rather than because there are no messages.
    """
    messages: List[MessageResponse] = Field(default_factory=list)
    conversations: List[ConversationResponse] = Field(default_factory=list)
    degraded: bool = False


class SendMessageResponse(BaseModel):
    success: bool = True
    message_id: Optional[str] = Field(None, serialization_alias="messageId")


class WebhookStatusResponse(BaseModel):
    status: str


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import EmailStatus

Name = Field(..., min_length=1, max_length=100)


class SenderCreate(BaseModel):
    name: str = Name
    address: EmailStr
    server_address: str = Field(..., min_length=1, max_length=100)
    login: Optional[str] = Field(None, max_length=100)
    passcode: str = Field(..., max_length=100)


class SenderUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[EmailStr] = None
    server_address: Optional[str] = Field(None, min_length=1, max_length=100)
    login: Optional[str] = Field(None, max_length=100)
    passcode: Optional[str] = Field(None, max_length=100)


class SenderDto(BaseModel):
    """Senders are listed without their passcode."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    name: str
    address: str
    server_address: str
    login: Optional[str] = None


class TemplateCreate(BaseModel):
    name: str = Name
    content: str = ""


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    content: Optional[str] = None


class TemplateDto(TemplateCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str


class ReceiverCreate(BaseModel):
    name: str = Name
    address: EmailStr


class ReceiverUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[EmailStr] = None


class ReceiverDto(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    name: str
    address: str


class DistributionCreate(BaseModel):
    sender_id: int = Field(..., ge=1)
    template_id: int = Field(..., ge=1)
    name: str = Name
    subject: str = Field("", max_length=100)


class DistributionUpdate(BaseModel):
    sender_id: Optional[int] = Field(None, ge=1)
    template_id: Optional[int] = Field(None, ge=1)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    subject: Optional[str] = Field(None, max_length=100)


class DistributionDto(BaseModel):
    id: int
    sender_id: int
    template_id: int
    name: str
    subject: str
    sender_name: Optional[str] = None
    template_name: Optional[str] = None
    status: EmailStatus = EmailStatus.NONE
    emails_count: int = 0


class EmailingReceiverDto(BaseModel):
    """A receiver of the user and whether it is part of one distribution."""

    id: int
    name: str
    address: str
    assigned: bool


class EmailingReceiverUpdate(BaseModel):
    assigned: bool


class DistributionProgress(BaseModel):
    """Payload of the `DistributionUpdated` hub event."""

    distribution_id: int
    emails_sent: int = 0
    emails_pending: int = 0
    emails_error: int = 0

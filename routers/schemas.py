from decimal import Decimal
from typing import Any
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Bodies arrive in camelCase from the site's tracking script."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClickRequest(CamelModel):
    ref_code: str
    url: str | None = Field(default=None)
    path: str | None = Field(default=None)
    user_agent: str | None = Field(default=None)
    device_type: str | None = Field(default=None)
    source: str | None = Field(default=None)
    timestamp: Any = Field(default=None)  # client clock, informational only


class ConversionRequest(CamelModel):
    affiliate_code: str
    click_id: str | None = Field(default=None)
    purchase_amount: Decimal = Field(ge=0)
    package_id: str | None = Field(default=None)
    package_name: str | None = Field(default=None)
    booking_id: str | None = Field(default=None)
    session_id: str | None = Field(default=None)
    currency: str | None = Field(default=None)
    customer_email: str | None = Field(default=None)
    customer_name: str | None = Field(default=None)


class RegisterRequest(CamelModel):
    name: str
    email: EmailStr
    phone: str | None = Field(default=None)
    website: str | None = Field(default=None)
    bio: str | None = Field(default=None)
    password: str | None = Field(default=None)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

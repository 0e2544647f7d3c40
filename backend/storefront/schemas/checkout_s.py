from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator


class QuoteItemRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int
    quantity: int = 1


class QuoteShippingRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    zone: str | None = Field(default=None, max_length=24)


class CreateQuoteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    items: list[QuoteItemRequest] = Field(default_factory=list, max_length=50)
    shipping: QuoteShippingRequest | None = None


class BuyerRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)
    name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(
        min_length=1,
        max_length=80,
        validation_alias=AliasChoices("last_name", "lastName"),
    )
    email: EmailStr
    phone: str = Field(pattern=r"^[0-9+\s().-]{6,24}$")
    address: str | None = Field(default=None, max_length=160)
    city: str | None = Field(default=None, max_length=80)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("address")
    @classmethod
    def _address_min_length(cls, value: str | None) -> str | None:
        if value and len(value) < 4:
            raise ValueError("address is too short")
        return value or None


class CreatePreferenceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    quote_id: str = Field(min_length=1, max_length=64)
    buyer: BuyerRequest


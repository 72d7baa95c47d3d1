from pydantic import BaseModel, Field, field_validator
from decimal import Decimal


class PaymentRequestCreate(BaseModel):
    amount: Decimal = Field(..., description="Amount in rupees")
    description: str = Field(..., max_length=2000)

    @field_validator("amount")
    @classmethod
    def positive_amount(cls, v):
        if v <= 0:
            raise ValueError("Amount must be a positive number (in rupees)")
        return v

    @field_validator("description")
    @classmethod
    def description_required(cls, v):
        if not v.strip():
            raise ValueError("Description is required")
        return v.strip()

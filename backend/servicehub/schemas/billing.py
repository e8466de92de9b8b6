"""Pydantic schemas for renewal payments and billing history."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class ProcessPaymentRequest(BaseModel):
    payment_method_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("payment_method_id", "paymentMethodId"),
    )
    renewal_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("renewal_id", "renewalId"),
    )
    amount: float = Field(gt=0)
    assign_service_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("assign_service_id", "assignment_id", "assignServiceId"),
    )


class PaymentIntentSummary(BaseModel):
    id: str
    status: str
    amount: int
    currency: str


class PaymentResult(BaseModel):
    billing_history_id: str
    payment_intent: PaymentIntentSummary
    message: str = "Payment processed successfully"


class BillingHistoryOut(BaseModel):
    id: str
    user_email: str
    user_id: str | None = None
    assign_service_id: str
    renewal_id: str
    invoice_id: str | None = None
    service_name: str | None = None
    amount: float
    currency: str
    payment_status: str
    payment_method: str
    stripe_payment_intent_id: str | None = None
    payment_date: datetime | None = None
    failure_reason: str | None = None
    metadata: dict | None = Field(
        default=None,
        validation_alias=AliasChoices("extra_metadata", "metadata"),
    )
    created_at: datetime

    model_config = {"from_attributes": True}


class StatusBucket(BaseModel):
    status: str
    count: int
    total_amount: float


class BillingStats(BaseModel):
    by_status: list[StatusBucket]
    total_paid: float

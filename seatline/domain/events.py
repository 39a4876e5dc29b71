"""Typed decoding of inbound payment-processor events.

Events are decoded in two steps. The envelope (id, type, data.object) must
always decode; otherwise the request is rejected. The payload is then decoded
into the variant for its type. Known types fail closed with ``MalformedEvent``
when a required field is missing or invalid; unknown types decode to
``UnhandledEvent`` and are acknowledged without effect.
"""

from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from seatline.core.exceptions import MalformedEvent
from seatline.utils.validators import parse_occupant_names

PAYMENT_COMPLETED = "checkout.session.completed"
# Delayed payment methods complete the session unpaid and settle later
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ACCOUNT_UPDATED = "account.updated"

# Checkout session payment states that mean funds were captured
SETTLED_PAYMENT_STATES = ("paid", "no_payment_required")


class EventData(BaseModel):
    object: dict[str, Any]


class EventEnvelope(BaseModel):
    """Fields every processor event carries."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: EventData


# ==================== PAYMENT COMPLETED ====================


class CheckoutMetadata(BaseModel):
    """Metadata attached to the checkout session when it was created."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    class_id: UUID
    guest_id: UUID = Field(validation_alias=AliasChoices("guest_id", "user_id"))
    quantity: int = Field(gt=0, validation_alias=AliasChoices("quantity", "qty"))
    occupant_names: list[str] = Field(
        validation_alias=AliasChoices("occupant_names", "student_names")
    )
    hold_id: UUID | None = None
    liability_accepted: bool = False
    liability_version: str | None = None

    @field_validator("liability_accepted", mode="before")
    @classmethod
    def parse_flag(cls, value: Any) -> bool:
        # Metadata values are strings; anything but "true" or "1" is a refusal
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1")
        return value is True

    def accepted_liability(self, version: str) -> bool:
        return self.liability_accepted and self.liability_version == version

    @field_validator("occupant_names", mode="before")
    @classmethod
    def parse_names(cls, value: Any) -> list[str]:
        if not isinstance(value, (str, list)):
            raise ValueError("occupant names must be a string or a list")
        return parse_occupant_names(value)

    @model_validator(mode="after")
    def names_match_quantity(self) -> "CheckoutMetadata":
        if len(self.occupant_names) != self.quantity:
            raise ValueError(
                f"expected {self.quantity} occupant name(s), got {len(self.occupant_names)}"
            )
        return self


class CustomerDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None


class CheckoutSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    amount_total: int = Field(ge=0)
    currency: str | None = None
    payment_intent: str | dict[str, Any] | None = None
    payment_status: str | None = None
    customer_email: str | None = None
    customer_details: CustomerDetails | None = None
    metadata: CheckoutMetadata

    @model_validator(mode="before")
    @classmethod
    def fallback_to_intent_metadata(cls, data: Any) -> Any:
        # Older checkouts only set metadata on the (expanded) payment intent
        if isinstance(data, dict) and not data.get("metadata"):
            intent = data.get("payment_intent")
            if isinstance(intent, dict) and intent.get("metadata"):
                data = {**data, "metadata": intent["metadata"]}
        return data

    @property
    def payment_intent_id(self) -> str | None:
        if isinstance(self.payment_intent, dict):
            return self.payment_intent.get("id")
        return self.payment_intent

    @property
    def email(self) -> str | None:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email


class PaymentCompletedData(BaseModel):
    object: CheckoutSession


class PaymentCompleted(BaseModel):
    id: str
    type: Literal["checkout.session.completed", "checkout.session.async_payment_succeeded"]
    data: PaymentCompletedData

    @property
    def session(self) -> CheckoutSession:
        return self.data.object


# ==================== ACCOUNT STATUS CHANGED ====================


class AccountMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host_id: UUID | None = None


class ConnectedAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    details_submitted: bool
    charges_enabled: bool | None = None
    payouts_enabled: bool | None = None
    metadata: AccountMetadata = Field(default_factory=AccountMetadata)


class AccountStatusChangedData(BaseModel):
    object: ConnectedAccount


class AccountStatusChanged(BaseModel):
    id: str
    type: Literal["account.updated"]
    data: AccountStatusChangedData

    @property
    def account(self) -> ConnectedAccount:
        return self.data.object


# ==================== UNHANDLED ====================


class UnhandledEvent(BaseModel):
    id: str
    type: str


KnownEvent = Annotated[
    Union[PaymentCompleted, AccountStatusChanged],
    Field(discriminator="type"),
]

_known_event_adapter: TypeAdapter[PaymentCompleted | AccountStatusChanged] = TypeAdapter(KnownEvent)

KNOWN_EVENT_TYPES = frozenset({PAYMENT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED, ACCOUNT_UPDATED})

InboundEvent = PaymentCompleted | AccountStatusChanged | UnhandledEvent


def _errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors(include_url=False)
    ]


def decode_envelope(payload: Any) -> EventEnvelope:
    """Decode the outer event shape or raise ``MalformedEvent``."""
    try:
        return EventEnvelope.model_validate(payload)
    except ValidationError as e:
        raise MalformedEvent("Event envelope could not be decoded", errors=_errors(e))


def decode_event(payload: dict[str, Any]) -> InboundEvent:
    """Decode a full event into its typed variant.

    Raises:
        MalformedEvent: A known event type is missing required fields
    """
    envelope = decode_envelope(payload)
    if envelope.type not in KNOWN_EVENT_TYPES:
        return UnhandledEvent(id=envelope.id, type=envelope.type)

    try:
        return _known_event_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedEvent(
            f"Event {envelope.id} of type {envelope.type} is malformed",
            errors=_errors(e),
        )

# molle/application/ticket_selection.py

"""
Turns the checkout selection stored in TicketData into ticket lines.

Checkout flows have stored two spellings over time:
  {"pkgId", "qty", "holders": [{"name", "age", "phone"}]}
  {"packageId", "quantity", "ticketHolders": [{"fullName", "age", "phoneNumber"}]}
Both parse into the same SelectionLine.
"""

import json
import logging
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from molle.domain.exceptions import PartialDataError

logger = logging.getLogger(__name__)

DEFAULT_HOLDER_AGE = 18
UNKNOWN_HOLDER_NAME = "Unknown"


class TicketHolder(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("name", "fullName"),
    )
    age: int | None = Field(default=None, ge=0)
    phone: str | None = Field(
        default=None,
        validation_alias=AliasChoices("phone", "phoneNumber"),
    )


class SelectionLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    package_id: str = Field(validation_alias=AliasChoices("pkgId", "packageId", "package_id"))
    quantity: int = Field(gt=0, validation_alias=AliasChoices("qty", "quantity"))
    holders: list[TicketHolder] = Field(
        validation_alias=AliasChoices("holders", "ticketHolders"),
    )


@dataclass(frozen=True)
class HolderSlot:
    """One attendee slot ready to become a ticket."""

    name: str
    age: int
    phone: str


def parse_ticket_data(raw: str | None) -> list[SelectionLine] | None:
    """
    Returns None when there is no usable structured selection at all, so the
    caller can fall back. Individual malformed lines are dropped.
    """
    if not raw:
        return None

    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ticket data is not valid JSON; ignoring structured selection")
        return None

    if not isinstance(data, list):
        logger.warning("Ticket data is not a list of selections; ignoring structured selection")
        return None

    lines = []
    for index, item in enumerate(data):
        try:
            lines.append(_parse_line(index, item))
        except PartialDataError as exc:
            logger.warning("Skipping selection line: %s", exc)
    return lines


def _parse_line(index: int, item) -> SelectionLine:
    try:
        return SelectionLine.model_validate(item)
    except ValidationError as exc:
        raise PartialDataError(
            f"line {index} has an invalid structure ({exc.error_count()} errors)"
        ) from exc


def parse_quantity_hint(value, default: int = 1) -> int:
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return quantity if quantity > 0 else default


def fallback_selection(
    package_id: str | None,
    quantity_hint,
    customer_name: str | None,
    customer_phone: str | None,
    buyer_name: str | None,
    buyer_phone: str | None,
) -> list[SelectionLine]:
    """
    Degraded path for payment flows that lost the structured selection:
    one line for the booking's package, sized by the order's ticket tag.
    """
    quantity = parse_quantity_hint(quantity_hint)
    name = customer_name or buyer_name or UNKNOWN_HOLDER_NAME
    phone = customer_phone or buyer_phone or ""

    logger.warning(
        "Building fallback selection: package=%s quantity=%s holder=%s",
        package_id,
        quantity,
        name,
    )

    if not package_id:
        return []

    return [
        SelectionLine(
            package_id=package_id,
            quantity=quantity,
            holders=[TicketHolder(name=name, age=DEFAULT_HOLDER_AGE, phone=phone)],
        )
    ]


def holder_slots(
    line: SelectionLine,
    buyer_name: str | None,
    buyer_phone: str | None,
) -> list[HolderSlot]:
    """
    Expands a line to one slot per unit of quantity. Missing holders are
    filled from the buyer's profile; a holder with no name drops its slot.
    """
    slots = []
    for position in range(line.quantity):
        if position < len(line.holders):
            holder = line.holders[position]
        else:
            holder = TicketHolder(
                name=buyer_name or UNKNOWN_HOLDER_NAME,
                age=DEFAULT_HOLDER_AGE,
                phone=buyer_phone or "",
            )

        name = (holder.name or "").strip()
        if not name:
            logger.warning(
                "Skipping ticket %s of package %s: holder has no name",
                position + 1,
                line.package_id,
            )
            continue

        slots.append(
            HolderSlot(
                name=name,
                age=DEFAULT_HOLDER_AGE if holder.age is None else holder.age,
                phone=holder.phone or "",
            )
        )
    return slots

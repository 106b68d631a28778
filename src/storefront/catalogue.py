"""
Ticket catalogue - ticket types, prices and line-item building for checkout
"""

from pathlib import Path
from typing import Dict, List, Mapping, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from src.integrations.contracts.interfaces import LineItem
from src.utils.config_loader import DEFAULT_TICKETS_CONFIG

logger = logging.getLogger(__name__)


class TicketType(BaseModel):
    code: str
    name: str
    section: str = "general"
    price: float = Field(gt=0)


class EventInfo(BaseModel):
    name: str
    currency: str = "BRL"


class InvalidSelectionError(ValueError):
    pass


class TicketCatalogue(BaseModel):
    event: EventInfo
    tickets: List[TicketType]

    @field_validator("tickets")
    @classmethod
    def _unique_codes(cls, tickets: List[TicketType]) -> List[TicketType]:
        codes = [t.code for t in tickets]
        duplicates = sorted({c for c in codes if codes.count(c) > 1})
        if duplicates:
            raise ValueError(f"duplicate ticket codes: {', '.join(duplicates)}")
        if not tickets:
            raise ValueError("catalogue must define at least one ticket type")
        return tickets

    def get(self, code: str) -> Optional[TicketType]:
        return next((t for t in self.tickets if t.code == code), None)

    def build_line_items(self, selection: Mapping[str, int]) -> List[LineItem]:
        """Turn {code: quantity} into line items in catalogue order, skipping zero quantities."""
        unknown = sorted(code for code in selection if self.get(code) is None)
        if unknown:
            raise InvalidSelectionError(f"Unknown ticket type(s): {', '.join(unknown)}")

        items: List[LineItem] = []
        for ticket in self.tickets:
            quantity = int(selection.get(ticket.code, 0) or 0)
            if quantity < 0:
                raise InvalidSelectionError(f"Quantity for {ticket.code} must not be negative")
            if quantity == 0:
                continue
            items.append(LineItem.for_quantity(ticket.name, quantity, ticket.price))

        if not items:
            raise InvalidSelectionError("Select at least one ticket")
        return items

    @staticmethod
    def total(line_items: List[LineItem]) -> float:
        return round(sum(item.line_total for item in line_items), 2)

    @staticmethod
    def ticket_count(line_items: List[LineItem]) -> int:
        return sum(item.quantity for item in line_items)

    def describe(self, line_items: List[LineItem]) -> str:
        return f"{self.event.name} - {self.ticket_count(line_items)} ingresso(s)"

    def to_dict(self) -> Dict:
        return {
            "event": self.event.model_dump(),
            "tickets": [t.model_dump() for t in self.tickets],
        }


def load_ticket_catalogue(config_path: Optional[Path] = None) -> TicketCatalogue:
    """
    Load and validate the ticket catalogue from YAML

    Args:
        config_path: Path to config file. Defaults to config/tickets.yml

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    config_path = Path(config_path) if config_path else DEFAULT_TICKETS_CONFIG

    if not config_path.exists():
        raise FileNotFoundError(f"Ticket catalogue not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    try:
        catalogue = TicketCatalogue(**config_data)
        logger.info(f"Loaded {len(catalogue.tickets)} ticket types from {config_path}")
        return catalogue
    except ValidationError as e:
        logger.error(f"Ticket catalogue validation failed: {e}")
        raise

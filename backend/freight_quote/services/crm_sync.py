"""Hand a rate-search summary to the CRM as a contact note.

Runs as a background task after the response is sent. Every failure is
logged and dropped; the CRM never affects a search result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..core.config import settings
from .freight_class import format_class
from .request_normalizer import describe_modes, line_freight_class
from .response_normalizer import NormalizedRate

logger = logging.getLogger(__name__)

HUBSPOT_API_BASE = "https://api.hubapi.com"
# HubSpot-defined association: note -> contact
NOTE_TO_CONTACT_ASSOCIATION = 202


@dataclass
class RateSummary:
    contact_email: Optional[str]
    lane: str
    modes: List[str]
    top_rates: List[NormalizedRate]
    highlights: List[str] = field(default_factory=list)
    quote_id: Optional[str] = None

    def note_body(self) -> str:
        lines = [f"Shipping Rate Request ({self.lane})", f"Modes: {describe_modes(self.modes)}"]
        if self.quote_id:
            lines.append(f"Quote: {self.quote_id}")
        if self.highlights:
            lines.append("Shipment: " + "; ".join(self.highlights))
        lines.append("")
        lines.append(f"Top {len(self.top_rates)} Rates:")
        for r in self.top_rates:
            days = r.transit_days if r.transit_days is not None else "N/A"
            lines.append(f"{r.carrier_name} {r.service_name}: ${r.total_cost:.2f} {r.currency} ({days} days)")
        return "\n".join(lines)


def build_rate_summary(request, rates: Sequence[NormalizedRate], modes: Sequence[str], quote_id: Optional[str] = None, top_n: Optional[int] = None) -> RateSummary:
    n = settings.CRM_TOP_RATES if top_n is None else top_n
    lane = (
        f"{request.origin.postal_code} {request.origin.country_code} -> "
        f"{request.destination.postal_code} {request.destination.country_code}"
    )
    highlights = []
    for line in request.lines:
        text = f"{line.quantity} x {line.packaging_type.value} {line.weight:g}{line.weight_unit.value.lower()}"
        freight_class = line_freight_class(line)
        if freight_class:
            text += f" class {format_class(freight_class)}"
        if line.hazmat:
            text += " hazmat"
        highlights.append(text)
    email = request.contact.email if request.contact else None
    return RateSummary(
        contact_email=str(email) if email else None,
        lane=lane,
        modes=list(modes),
        top_rates=list(rates[:n]),
        highlights=highlights,
        quote_id=quote_id,
    )


async def _find_contact_id(http: httpx.AsyncClient, email: str, headers: Dict[str, str]) -> Optional[str]:
    resp = await http.post(
        f"{HUBSPOT_API_BASE}/crm/v3/objects/contacts/search",
        json={
            "filterGroups": [{"filters": [{"propertyName": "email", "operator": "EQ", "value": email}]}],
            "properties": ["email"],
            "limit": 1,
        },
        headers=headers,
    )
    if resp.status_code >= 400:
        logger.warning("HubSpot contact search failed: %s", resp.status_code)
        return None
    results = (resp.json() or {}).get("results") or []
    return results[0].get("id") if results else None


async def push_rate_summary(summary: RateSummary, token: Optional[str] = None, http: Optional[httpx.AsyncClient] = None) -> bool:
    """Post ``summary`` as a note on the contact. Returns True when written."""
    token = settings.HUBSPOT_ACCESS_TOKEN if token is None else token
    if not token or not summary.contact_email:
        logger.debug("CRM hand-off skipped (token or contact email missing)")
        return False
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    client = http or httpx.AsyncClient(timeout=10.0)
    try:
        contact_id = await _find_contact_id(client, summary.contact_email, headers)
        if not contact_id:
            logger.info("CRM contact %s not found; note skipped", summary.contact_email)
            return False
        payload: Dict[str, Any] = {
            "properties": {"hs_note_body": summary.note_body()},
            "associations": [
                {
                    "to": {"id": contact_id},
                    "types": [{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": NOTE_TO_CONTACT_ASSOCIATION}],
                }
            ],
        }
        resp = await client.post(f"{HUBSPOT_API_BASE}/crm/v3/objects/notes", json=payload, headers=headers)
        if resp.status_code >= 400:
            logger.warning("HubSpot note creation failed: %s", resp.status_code)
            return False
        return True
    except Exception:
        logger.warning("CRM hand-off failed", exc_info=True)
        return False
    finally:
        if http is None:
            await client.aclose()

"""Ticket minting, QR artifacts and the gate-side scan projection."""

from .artifacts import ArtifactStore, LocalArtifactStore, render_qr_png
from .issuer import TicketIssuer, plan_units
from .models import IssuanceReport, ScanRecord, Ticket, TicketStatus
from .repository import TicketRepository

__all__ = [
    "ArtifactStore",
    "IssuanceReport",
    "LocalArtifactStore",
    "ScanRecord",
    "Ticket",
    "TicketIssuer",
    "TicketRepository",
    "TicketStatus",
    "plan_units",
    "render_qr_png",
]

from app.models.venue import Venue
from app.models.event import Event
from app.models.seat import Seat, SeatStatus
from app.models.hold import SeatHold, SeatHoldSeat, HoldState
from app.models.pricing_tier import PricingTier
from app.models.payment import Payment
from app.models.audit_log import AuditLog

from app.db.session import Base
from app.models.venue import Venue
from app.models.event import Event
from app.models.seat import Seat
from app.models.hold import SeatHold, SeatHoldSeat
from app.models.pricing_tier import PricingTier
from app.models.payment import Payment
from app.models.audit_log import AuditLog

from app.schemas.common import CamelModel, Pagination
from app.schemas.user import UserRole, CurrentUser, TokenPayload
from app.schemas.pricing import (
    PricingTier, VenueTierIn, EventTierIn, VenueTiersUpdate, VenuePricingResponse,
    EventTiersUpdate, EventTierResult, EventPricingUpdateResponse, EventPricingResponse,
)
from app.schemas.seat import (
    Seat, SeatDescriptor, SeatBatchCreate, SeatBatchCreateResponse, SeatListResponse,
    SeatStatistics, SectionStatistics, SeatMapResponse, SectionSeatsResponse,
)
from app.schemas.reservation import (
    ReserveRequest, ReserveResponse, ReleaseRequest, ReleaseResponse,
    ConfirmRequest, ConfirmResponse, Reservation, ReservationListResponse,
)

from .shipment import (
    Contact,
    DimensionUnit,
    HazmatDetail,
    Location,
    PackagingType,
    RateSearchRequest,
    ShipmentLine,
    WeightType,
    WeightUnit,
)
from .rates import (
    ErrorEnvelope,
    NoRatesResponse,
    QuotaRead,
    QuotaTopUp,
    RateRead,
    RateSearchResponse,
    rate_read_from_row,
)
from .booking import BookedRate, BookingCreate, BookingResponse
from .quote import QuoteList, QuoteSummary

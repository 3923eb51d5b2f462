from . import crud_audit
from . import crud_booking
from . import crud_quote

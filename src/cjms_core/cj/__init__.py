"""Affiliate network (CJ) client."""
from .client import CJClient, convert_amount_to_decimal
from .country_codes import get_iso_code_3_from_iso_code_2
from .models import CommissionDetailItem, CommissionDetailRecord, CommissionDetailRecordSet

__all__ = [
    "CJClient",
    "CommissionDetailItem",
    "CommissionDetailRecord",
    "CommissionDetailRecordSet",
    "convert_amount_to_decimal",
    "get_iso_code_3_from_iso_code_2",
]

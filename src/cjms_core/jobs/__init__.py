"""One-shot batch jobs of the attribution lifecycle."""
from .batch_refunds import batch_refunds_by_day, render_correction_file
from .check_refunds import fetch_and_process_refunds
from .check_subscriptions import fetch_and_process_new_subscriptions
from .cleanup import archive_expired_aics
from .report_subscriptions import report_subscriptions_to_cj
from .verify_reports import verify_reports_with_cj

__all__ = [
    "archive_expired_aics",
    "batch_refunds_by_day",
    "fetch_and_process_new_subscriptions",
    "fetch_and_process_refunds",
    "render_correction_file",
    "report_subscriptions_to_cj",
    "verify_reports_with_cj",
]

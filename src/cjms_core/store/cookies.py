"""Cookie minting for the HTTP facade."""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from .aic import AICModel, AttributionCookie


logger = logging.getLogger(__name__)

# Sent by the facade when a PUT only carries a new flow_id.
EMPTY_CJ_ID = "empty_cj_id"


class CookieMinter:
    """Creates and refreshes attribution cookies."""

    def __init__(self, aic_model: AICModel):
        self.aics = aic_model

    @classmethod
    def for_days(cls, conn, aic_expiration_days: int) -> "CookieMinter":
        return cls(AICModel(conn, timedelta(days=aic_expiration_days)))

    def create(
        self, cj_event_value: str, flow_id: str, now: Optional[datetime] = None
    ) -> AttributionCookie:
        return self.aics.create(cj_event_value, flow_id, now=now)

    def update(
        self,
        aic_id: uuid.UUID,
        flow_id: str,
        cj_event_value: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttributionCookie:
        """Rewrite a live cookie.

        Raises:
            NotFoundError: If the id is not in aic
        """
        existing = self.aics.fetch_one_by_id(aic_id)

        if (
            cj_event_value is None
            or cj_event_value == EMPTY_CJ_ID
            or cj_event_value == existing.cj_event_value
        ):
            return self.aics.update_flow_id(aic_id, flow_id)

        return self.aics.update_flow_id_and_cj_event_value(
            aic_id, cj_event_value, flow_id, now=now
        )

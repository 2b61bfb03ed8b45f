import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from ..config import WHEREBY_API_KEY, WHEREBY_API_URL
from ..errors import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass
class ProvisionedMeeting:
    meeting_id: str
    room_url: str


class WherebyMeetingProvisioner:
    """Creates and deletes Whereby rooms for booked consultations"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key or WHEREBY_API_KEY
        self.base_url = (base_url or WHEREBY_API_URL).rstrip("/")
        self.transport = transport
        self.timeout = timeout

        if not self.api_key:
            logger.warning("WHEREBY_API_KEY not set; meeting provisioning will fail until configured")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    async def create_meeting(self, start: datetime, end: datetime) -> ProvisionedMeeting:
        """Create a room tagged with the booking window; it stays open until `end`"""
        payload: dict[str, Any] = {
            "startDate": start.replace(tzinfo=timezone.utc).isoformat(),
            "endDate": end.replace(tzinfo=timezone.utc).isoformat(),
            "fields": ["hostRoomUrl"],
        }
        try:
            async with self._client() as client:
                response = await client.post("/meetings", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"❌ Whereby meeting creation failed: {e.response.status_code} {e.response.text}"
            )
            raise UpstreamFailure("Meeting provider rejected the request") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Whereby meeting creation error: {e}")
            raise UpstreamFailure("Meeting provider unavailable") from e

        meeting_id = data.get("meetingId")
        room_url = data.get("roomUrl")
        if not meeting_id or not room_url:
            logger.error(f"❌ Whereby response missing meetingId/roomUrl: {data}")
            raise UpstreamFailure("Meeting provider returned an incomplete response")

        logger.info(f"🎥 Whereby meeting {meeting_id} created for {start.isoformat()}")
        return ProvisionedMeeting(meeting_id=str(meeting_id), room_url=room_url)

    async def delete_meeting(self, meeting_id: str) -> None:
        """Delete a room; a room that is already gone counts as deleted"""
        try:
            async with self._client() as client:
                response = await client.delete(f"/meetings/{meeting_id}")
                if response.status_code == 404:
                    logger.info(f"Whereby meeting {meeting_id} already deleted")
                    return
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ Whereby meeting deletion failed for {meeting_id}: {e}")
            raise UpstreamFailure("Meeting provider could not delete the room") from e

        logger.info(f"🗑️ Whereby meeting {meeting_id} deleted")


_provisioner: Optional[WherebyMeetingProvisioner] = None


def get_meeting_provisioner() -> WherebyMeetingProvisioner:
    """FastAPI dependency returning the process-wide Whereby client"""
    global _provisioner
    if _provisioner is None:
        _provisioner = WherebyMeetingProvisioner()
    return _provisioner

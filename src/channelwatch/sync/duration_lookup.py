"""Video duration lookup against the YouTube Data API."""

import logging
import re
from typing import Any

import httpx

from ..exceptions import DurationLookupError

logger = logging.getLogger(__name__)

ISO8601_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_iso8601_duration(raw_value: str) -> int:
    """Convert an ISO 8601 duration such as ``PT1H2M3S`` to seconds.

    Raises:
        ValueError: If the value is not a supported ISO 8601 duration.
    """
    matched = ISO8601_DURATION_PATTERN.match(raw_value.strip())
    if matched is None:
        raise ValueError(f"Invalid ISO 8601 duration: {raw_value!r}")

    days = int(matched.group("days") or 0)
    hours = int(matched.group("hours") or 0)
    minutes = int(matched.group("minutes") or 0)
    seconds = int(matched.group("seconds") or 0)
    return days * 86_400 + hours * 3_600 + minutes * 60 + seconds


class DurationLookup:
    """Look up video durations with an optional API credential.

    Without a credential the lookup is disabled and every call returns None.

    Attributes:
        _api_key: YouTube Data API key, None when lookups are disabled.
        _api_url: The ``videos`` endpoint of the YouTube Data API.
    """

    def __init__(self, api_key: str | None, api_url: str):
        self._api_key = api_key
        self._api_url = api_url

    @property
    def enabled(self) -> bool:
        """Return True if a credential is configured."""
        return bool(self._api_key)

    async def lookup(self, external_id: str) -> int | None:
        """Return the duration of a video in seconds.

        Args:
            external_id: External video identifier.

        Returns:
            The duration in seconds, or None when lookups are disabled.

        Raises:
            DurationLookupError: If the request fails or the response has no
                usable duration.
        """
        if not self.enabled:
            return None

        params = {"part": "contentDetails", "id": external_id, "key": self._api_key}
        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(self._api_url, params=params)
                response.raise_for_status()
                payload: dict[str, Any] = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise DurationLookupError(
                    "Duration request failed.", external_id=external_id
                ) from e

        match payload.get("items"):
            case [{"contentDetails": {"duration": str(raw_duration)}}, *_]:
                pass
            case _:
                raise DurationLookupError(
                    "Duration response has no content details.",
                    external_id=external_id,
                )

        try:
            duration = parse_iso8601_duration(raw_duration)
        except ValueError as e:
            raise DurationLookupError(
                "Duration response is not an ISO 8601 duration.",
                external_id=external_id,
            ) from e
        logger.debug(
            "Duration looked up.",
            extra={"external_id": external_id, "duration": duration},
        )
        return duration

from typing import Optional, Dict
import asyncio

import aiohttp
from pydantic import ValidationError

from ybuild.common.config.constants import BUILD_LOGS_API_PATH
from ybuild.common.config.logging_config import get_logger
from ybuild.common.config.settings import Settings, get_settings
from ybuild.common.dto.build_log import BuildLog
from ybuild.common.exceptions.build_exceptions import UploadError


logger = get_logger(__name__)


class BuildLogPublisher:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_url: Optional[str] = None,
        management_url: Optional[str] = None,
        api_token: Optional[str] = None,
    ):
        self._settings = settings or get_settings()
        self._api_url = (api_url or self._settings.api_url).rstrip("/")
        self._management_url = (management_url or self._settings.management_url).rstrip("/")
        self._api_token = api_token or self._settings.get_api_token()
        self._timeout = aiohttp.ClientTimeout(total=self._settings.upload_timeout_seconds)

    @property
    def endpoint(self) -> str:
        return f"{self._api_url}{BUILD_LOGS_API_PATH}"

    def view_url(self, log_uuid: str) -> str:
        return f"{self._management_url}{BUILD_LOGS_API_PATH}/{log_uuid}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def upload(self, contents: str) -> Optional[str]:
        """Send a build log to the management API.

        Returns the operator-facing URL of the stored log, or None when the
        upload did not succeed. Failures are logged and never raised.
        """
        logger.info("Uploading build logs...")
        build_log = BuildLog(contents=contents)

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(
                    self.endpoint,
                    data=build_log.to_payload(),
                    headers=self._headers(),
                ) as response:
                    body = await response.text()
                    if response.status != 200:
                        error = UploadError(
                            f"Status code uploading log: {response.status} {body[:500]}",
                            status_code=response.status,
                            response_body=body,
                        )
                        logger.warning(str(error), extra={"error_details": error.details})
                        return None

            stored = BuildLog.model_validate_json(body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = UploadError(f"Couldn't upload logs: {e}", cause=e)
            logger.warning(str(error))
            return None
        except ValidationError as e:
            error = UploadError(f"Failed to parse response: {e}", cause=e)
            logger.warning(str(error))
            return None

        if not stored.uuid:
            logger.warning("Build log stored without an identifier")
            return None

        url = self.view_url(stored.uuid)
        logger.info(f"View your build log here: {url}")
        return url

"""
Infrastructure adapter: CloudFormation pre-signed response URL → IResultReporter.

Used when the function is registered directly as the custom resource service
token. The outcome is PUT as JSON to the event's ResponseURL; CloudFormation
waits on that URL, so the upload is retried on transport errors before giving up.
"""

import json
import logging
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from vectorindex.domain.entities.reconcile import ReconcileResult
from vectorindex.domain.ports.result_reporter_port import IResultReporter

logger = logging.getLogger(__name__)

# CloudFormation rejects response bodies larger than 4096 bytes.
_MAX_BODY_BYTES = 4096
_UPLOAD_TIMEOUT_SECONDS = 10.0


class CloudFormationResponseReporter(IResultReporter):
    """Sends SUCCESS / FAILED to the pre-signed S3 URL CloudFormation provides."""

    def __init__(self, http_client: Optional[httpx.Client] = None, log_stream_name: str = "") -> None:
        """
        Args:
            http_client:     httpx client to upload with (tests inject a MockTransport).
                             When omitted, a client is opened and closed per upload.
            log_stream_name: CloudWatch log stream named in the default failure reason.
        """
        self._http = http_client
        self._log_stream_name = log_stream_name

    def report(self, event: dict[str, Any], result: ReconcileResult, data: dict[str, Any] | None = None) -> dict:
        response_url = event.get("ResponseURL")
        if not response_url:
            raise ValueError("Event has no ResponseURL to report to.")

        body = self.build_body(event, result, data)
        self._put(response_url, body)
        logger.info(f"[{event.get('RequestId', '')}] reported {body['Status']} to CloudFormation")
        return body

    def build_body(self, event: dict[str, Any], result: ReconcileResult, data: dict[str, Any] | None = None) -> dict:
        reason = result.reason or f"See the details in CloudWatch Log Stream: {self._log_stream_name}"
        body = {
            "Status": "SUCCESS" if result.succeeded else "FAILED",
            "Reason": reason,
            "PhysicalResourceId": result.physical_id,
            "StackId": event.get("StackId", ""),
            "RequestId": event.get("RequestId", ""),
            "LogicalResourceId": event.get("LogicalResourceId", ""),
            "NoEcho": False,
            "Data": dict(data or {}) if result.succeeded else {},
        }
        overflow = len(json.dumps(body).encode("utf-8")) - _MAX_BODY_BYTES
        if overflow > 0:
            body["Reason"] = reason[: max(0, len(reason) - overflow - 3)] + "..."
        return body

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _put(self, url: str, body: dict) -> None:
        if self._http is not None:
            self._send(self._http, url, body)
            return
        with httpx.Client(timeout=_UPLOAD_TIMEOUT_SECONDS) as http:
            self._send(http, url, body)

    @staticmethod
    def _send(http: httpx.Client, url: str, body: dict) -> None:
        # The pre-signed URL is signed for an empty content type.
        response = http.put(
            url,
            content=json.dumps(body).encode("utf-8"),
            headers={"content-type": ""},
        )
        response.raise_for_status()

import json

import httpx
import pytest

from vectorindex.domain.entities.reconcile import ReconcileResult, ResultStatus
from vectorindex.infrastructure.reporting.cfn_response_reporter import CloudFormationResponseReporter
from vectorindex.infrastructure.reporting.provider_reporter import ProviderFrameworkReporter, ReconcileFailed

RESPONSE_URL = "https://cloudformation-custom-resource-response.s3.amazonaws.com/presigned"

EVENT = {
    "RequestType": "Create",
    "RequestId": "c0ffee-1",
    "StackId": "arn:aws:cloudformation:us-east-1:123456789012:stack/demo/1",
    "LogicalResourceId": "VectorIndex",
    "ResponseURL": RESPONSE_URL,
}

SUCCESS = ReconcileResult(status=ResultStatus.SUCCESS, physical_id="host/docs-v1")
FAILED = ReconcileResult(
    status=ResultStatus.FAILED,
    physical_id="host/docs-v1",
    reason="Conflict: dimensions are fixed at creation",
    error_kind="Conflict",
)


class TestProviderFrameworkReporter:
    def test_success_returns_physical_id_and_data(self):
        response = ProviderFrameworkReporter().report(EVENT, SUCCESS, {"IndexName": "docs-v1"})

        assert response == {"PhysicalResourceId": "host/docs-v1", "Data": {"IndexName": "docs-v1"}}

    def test_failure_raises_with_reason(self):
        with pytest.raises(ReconcileFailed, match="Conflict: dimensions") as excinfo:
            ProviderFrameworkReporter().report(EVENT, FAILED)
        assert excinfo.value.result is FAILED


class TestCloudFormationResponseReporter:
    @pytest.fixture
    def sent(self):
        return []

    @pytest.fixture
    def reporter(self, sent):
        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200)

        http = httpx.Client(transport=httpx.MockTransport(handler))
        return CloudFormationResponseReporter(http_client=http, log_stream_name="2026/10/19/[$LATEST]abc")

    def test_success_is_put_to_response_url(self, reporter, sent):
        body = reporter.report(EVENT, SUCCESS, {"IndexName": "docs-v1"})

        assert len(sent) == 1
        request = sent[0]
        assert request.method == "PUT"
        assert str(request.url) == RESPONSE_URL
        assert request.headers["content-type"] == ""
        payload = json.loads(request.content)
        assert payload == body
        assert payload["Status"] == "SUCCESS"
        assert payload["PhysicalResourceId"] == "host/docs-v1"
        assert payload["RequestId"] == "c0ffee-1"
        assert payload["Data"] == {"IndexName": "docs-v1"}
        assert "CloudWatch Log Stream: 2026/10/19/[$LATEST]abc" in payload["Reason"]

    def test_failure_carries_reason(self, reporter, sent):
        body = reporter.report(EVENT, FAILED, {"IndexName": "docs-v1"})

        assert body["Status"] == "FAILED"
        assert body["Reason"] == FAILED.reason
        assert body["Data"] == {}

    def test_long_reason_is_truncated_to_fit(self, reporter):
        huge = ReconcileResult(status=ResultStatus.FAILED, physical_id="host/docs-v1", reason="x" * 10000)

        body = reporter.build_body(EVENT, huge)

        assert len(json.dumps(body).encode("utf-8")) <= 4096
        assert body["Reason"].endswith("...")

    def test_event_without_response_url_is_rejected(self, reporter):
        with pytest.raises(ValueError):
            reporter.report({"RequestId": "x"}, SUCCESS)

    def test_rejected_upload_raises(self, sent):
        http = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(403)))
        reporter = CloudFormationResponseReporter(http_client=http)

        with pytest.raises(httpx.HTTPStatusError):
            reporter.report(EVENT, SUCCESS)

    def test_default_client_is_closed_after_upload(self, monkeypatch):
        opened = []
        real_client = httpx.Client

        def client_factory(**kwargs):
            client = real_client(transport=httpx.MockTransport(lambda request: httpx.Response(200)), **kwargs)
            opened.append(client)
            return client

        monkeypatch.setattr(httpx, "Client", client_factory)

        CloudFormationResponseReporter().report(EVENT, SUCCESS)

        assert len(opened) == 1
        assert opened[0].is_closed

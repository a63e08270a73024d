"""
Infrastructure adapter: OpenSearch Serverless (opensearch-py + SigV4) → IIndexClient.

All opensearch-py and boto3 details are confined here. Requests are signed
with AWSV4SignerAuth using the execution role credentials resolved by boto3;
the signing region and service are read from the collection endpoint
(`<collection-id>.<region>.aoss.amazonaws.com`).

Every remote failure is normalized to vectorindex.domain.errors so the
application layer never sees an opensearch-py exception. The transport's own
retries are disabled: RetryPolicy owns the retry budget.
"""

import contextlib
import logging
import os
from typing import Callable, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, NoCredentialsError
from opensearchpy import AWSV4SignerAuth, OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import (
    AuthenticationException,
    AuthorizationException,
    ConnectionError as OpenSearchConnectionError,
    NotFoundError,
    TransportError,
)

from vectorindex.domain.entities.deadline import InvocationDeadline
from vectorindex.domain.entities.index_spec import IndexSpec, MetadataField, ObservedIndex
from vectorindex.domain.errors import (
    AlreadyExists,
    AuthorizationDenied,
    ConflictError,
    FieldExists,
    InvalidSpec,
    NotFound,
    RemoteUnavailable,
)
from vectorindex.domain.ports.index_client_port import IIndexClient
from vectorindex.infrastructure.opensearch.index_mapping import (
    KnnSettings,
    build_create_body,
    build_field_mapping,
    parse_index_description,
)

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, float], OpenSearch]

_SERVERLESS_SERVICE = "aoss"
_MIN_TIMEOUT_SECONDS = 1.0
_MAPPER_CONFLICT_MARKERS = ("cannot be changed", "different type", "conflicts with existing mapper")


class OpenSearchIndexClient(IIndexClient):
    """Index administration against an OpenSearch Serverless collection."""

    def __init__(
        self,
        knn: Optional[KnnSettings] = None,
        region: Optional[str] = None,
        request_timeout: float = 30.0,
        deadline: Optional[InvocationDeadline] = None,
        session: Optional[boto3.session.Session] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        """
        Args:
            knn:                Engine settings used when creating indexes.
            region:             Fallback signing region when the endpoint does not name one.
            request_timeout:    Upper bound for a single HTTP request, in seconds.
            deadline:           Invocation deadline; request timeouts are clipped to it.
            session:            boto3 session supplying the signing credentials.
            connection_factory: Builds the OpenSearch client for (endpoint, timeout).
                                Defaults to a SigV4-signed HTTPS connection.
        """
        self._knn = knn or KnnSettings()
        self._region = region or os.environ.get("AWS_DEFAULT_REGION", "us-east-1")
        self._request_timeout = request_timeout
        self._deadline = deadline or InvocationDeadline.never()
        self._session = session
        self._connection_factory = connection_factory or self._signed_connection

    # ------------------------------------------------------------------
    # IIndexClient interface
    # ------------------------------------------------------------------

    def describe(self, endpoint: str, index_name: str) -> Optional[ObservedIndex]:
        try:
            with _normalized_errors("describe", index_name):
                response = self._connect(endpoint).indices.get(index=index_name)
        except NotFound:
            return None
        return parse_index_description(index_name, response)

    def create(self, endpoint: str, spec: IndexSpec) -> None:
        body = build_create_body(spec, self._knn)
        with _normalized_errors("create", spec.index_name):
            self._connect(endpoint).indices.create(index=spec.index_name, body=body)
        logger.info(f"Created index {spec.index_name!r} on {endpoint}")

    def add_metadata_field(self, endpoint: str, index_name: str, field: MetadataField) -> None:
        body = {"properties": {field.name: build_field_mapping(field)}}
        with _normalized_errors("add field to", index_name):
            self._connect(endpoint).indices.put_mapping(index=index_name, body=body)
        logger.info(f"Added field {field.name!r} to index {index_name!r} on {endpoint}")

    def delete(self, endpoint: str, index_name: str) -> None:
        with _normalized_errors("delete", index_name):
            self._connect(endpoint).indices.delete(index=index_name)
        logger.info(f"Deleted index {index_name!r} on {endpoint}")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect(self, endpoint: str) -> OpenSearch:
        timeout = max(_MIN_TIMEOUT_SECONDS, min(self._request_timeout, self._deadline.remaining()))
        return self._connection_factory(endpoint, timeout)

    def _signed_connection(self, endpoint: str, timeout: float) -> OpenSearch:
        host, port = split_endpoint(endpoint)
        region, service = signing_scope(host, self._region)
        session = self._session or boto3.Session()
        credentials = session.get_credentials()
        if credentials is None:
            raise AuthorizationDenied("no AWS credentials available to sign collection requests")
        return OpenSearch(
            hosts=[{"host": host, "port": port}],
            http_auth=AWSV4SignerAuth(credentials, region, service),
            use_ssl=True,
            verify_certs=True,
            connection_class=RequestsHttpConnection,
            timeout=timeout,
            max_retries=0,
            retry_on_timeout=False,
        )


def split_endpoint(endpoint: str) -> tuple[str, int]:
    """Return (host, port) for an endpoint given with or without scheme and port."""
    host = endpoint.strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0]
    if ":" in host:
        host, port = host.rsplit(":", 1)
        return host, int(port)
    return host, 443


def signing_scope(host: str, default_region: str) -> tuple[str, str]:
    """Read (region, service) from `<id>.<region>.<service>.amazonaws.com`."""
    parts = host.lower().split(".")
    if len(parts) >= 5 and parts[-2:] == ["amazonaws", "com"]:
        return parts[-4], parts[-3]
    return default_region, _SERVERLESS_SERVICE


@contextlib.contextmanager
def _normalized_errors(action: str, index_name: str) -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise NotFound(f"index {index_name!r} not found") from exc
    except (AuthenticationException, AuthorizationException) as exc:
        raise AuthorizationDenied(
            f"not allowed to {action} index {index_name!r}: {_error_detail(exc)}"
        ) from exc
    except OpenSearchConnectionError as exc:
        # Covers ConnectionTimeout and SSL errors.
        raise RemoteUnavailable(f"could not reach collection to {action} index {index_name!r}: {exc}") from exc
    except TransportError as exc:
        raise _classify_transport_error(action, index_name, exc) from exc
    except NoCredentialsError as exc:
        raise AuthorizationDenied(f"no AWS credentials to {action} index {index_name!r}") from exc
    except BotoCoreError as exc:
        raise RemoteUnavailable(f"could not resolve AWS credentials: {exc}") from exc


def _classify_transport_error(action: str, index_name: str, exc: TransportError) -> Exception:
    status = exc.status_code if isinstance(exc.status_code, int) else None
    error_type = _error_type(exc)
    detail = _error_detail(exc)

    if error_type == "resource_already_exists_exception":
        return AlreadyExists(f"index {index_name!r} already exists")
    lowered = detail.lower()
    if error_type == "illegal_argument_exception" and ("mapper [" in lowered or "mapper for [" in lowered):
        if any(marker in lowered for marker in _MAPPER_CONFLICT_MARKERS):
            return ConflictError(f"cannot {action} index {index_name!r}: {detail}")
        if "already" in lowered:
            return FieldExists(f"field already mapped on index {index_name!r}: {detail}")
    if status is None or status == 429 or status >= 500:
        return RemoteUnavailable(f"collection failed to {action} index {index_name!r} ({status}): {detail}")
    if status in (401, 403):
        return AuthorizationDenied(f"not allowed to {action} index {index_name!r}: {detail}")
    return InvalidSpec(f"collection rejected request to {action} index {index_name!r} ({status}): {detail}")


def _error_type(exc: TransportError) -> Optional[str]:
    info = exc.info if isinstance(exc.info, dict) else {}
    error = info.get("error")
    if isinstance(error, dict):
        root = error.get("root_cause") or [{}]
        return error.get("type") or root[0].get("type")
    return exc.error if isinstance(exc.error, str) else None


def _error_detail(exc: TransportError) -> str:
    info = exc.info if isinstance(exc.info, dict) else {}
    error = info.get("error")
    if isinstance(error, dict) and error.get("reason"):
        return str(error["reason"])
    if isinstance(error, str):
        return error
    return str(exc.error)

"""
Tests for the HTTP remote client.

Uses httpx.MockTransport to verify the command wire format, response
envelope unwrapping, and the mapping of backend and transport failures
onto the structured exception hierarchy.
"""

import asyncio
import json

import httpx
from hypothesis import given, settings
from hypothesis import strategies as st

from dns_sync.enums import DnsRecordType, FailureKind, TagOperation
from dns_sync.exceptions import CredentialError, NetworkError, RemoteError, classify_error
from dns_sync.models import BatchTagFailure, BatchTagRequest, BatchTagResult, DomainMetadataUpdate
from dns_sync.remote import HttpRemoteClient, is_credential_error


def envelope_transport(responses: dict, seen: list) -> httpx.MockTransport:
    """Answers /invoke/{command} with the envelope registered for command."""

    def handler(request: httpx.Request) -> httpx.Response:
        command = request.url.path.rsplit("/", 1)[-1]
        seen.append((command, json.loads(request.content or b"{}")))
        body = responses[command]
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


def run_client(responses: dict, call):
    seen: list = []

    async def run():
        async with HttpRemoteClient("http://backend/", transport=envelope_transport(responses, seen)) as client:
            return await call(client)

    return asyncio.run(run()), seen


class TestEnvelopeProperty:
    """Successful envelopes are unwrapped into models."""

    def test_list_domains(self) -> None:
        data = {
            "items": [
                {"id": "d1", "name": "example.com", "accountId": "acct-1", "provider": "cloudflare",
                 "metadata": {"isFavorite": True, "tags": ["prod"], "color": "red", "updatedAt": "t"}},
                {"id": "d2", "name": "example.org", "accountId": "acct-1", "provider": "cloudflare",
                 "status": "paused"},
            ],
            "page": 2,
            "pageSize": 50,
            "totalCount": 120,
            "hasMore": True,
        }
        page, seen = run_client(
            {"list_domains": {"success": True, "data": data}},
            lambda c: c.list_domains("acct-1", 2, 50),
        )

        assert seen == [("list_domains", {"accountId": "acct-1", "page": 2, "pageSize": 50})]
        assert [d.id for d in page.items] == ["d1", "d2"]
        assert page.items[0].tags == ["prod"]
        assert page.items[1].metadata is None
        assert page.page == 2
        assert page.total_count == 120
        assert page.has_more

    def test_list_records_sends_filters(self) -> None:
        data = {"items": [{"id": "r1", "domainId": "d1", "type": "MX", "name": "@", "value": "mx.example.com",
                           "ttl": 3600, "priority": 10}],
                "page": 1, "pageSize": 20, "totalCount": 1, "hasMore": False}
        page, seen = run_client(
            {"list_dns_records": {"success": True, "data": data}},
            lambda c: c.list_records("acct-1", "d1", 1, 20, keyword="mx", record_type=""),
        )

        assert seen[0][1]["keyword"] == "mx"
        assert seen[0][1]["recordType"] is None
        assert page.items[0].type is DnsRecordType.MX
        assert page.items[0].priority == 10

    def test_batch_and_metadata_commands(self) -> None:
        responses = {
            "batch_remove_domain_tags": {"success": True, "data": {
                "successCount": 1, "failedCount": 1,
                "failures": [{"accountId": "acct-2", "domainId": "d9", "reason": "refused"}],
            }},
            "update_domain_metadata": {"success": True, "data": {
                "isFavorite": False, "tags": [], "color": "blue", "updatedAt": "t2",
            }},
            "batch_delete_dns_records": {"success": True, "data": {"successCount": 2, "failedCount": 0}},
        }

        async def calls(client):
            batch = await client.batch_tags(TagOperation.REMOVE, [
                BatchTagRequest("acct-1", "d1", ["a"]),
                BatchTagRequest("acct-2", "d9", ["a"]),
            ])
            metadata = await client.update_metadata("acct-1", "d1", DomainMetadataUpdate(color="blue", note=None))
            deleted = await client.batch_delete_records("acct-1", "d1", ["r1", "r2"])
            return batch, metadata, deleted

        (batch, metadata, deleted), seen = run_client(responses, calls)

        assert batch.failed_count == 1
        assert batch.failures[0].domain_id == "d9"
        assert batch.failures[0].kind is FailureKind.REMOTE
        assert metadata.color == "blue"
        assert deleted.success_count == 2
        assert seen[1][1]["update"] == {"color": "blue", "note": None}
        assert seen[2][1] == {"accountId": "acct-1", "request": {"domainId": "d1", "recordIds": ["r1", "r2"]}}


class TestErrorMappingProperty:
    """Backend and transport failures map onto the exception hierarchy."""

    @given(
        error=st.sampled_from([
            {"code": "InvalidCredentials", "details": "token revoked"},
            {"code": "Provider", "details": {"code": "InvalidCredentials", "provider": "aliyun",
                                             "message": "signature mismatch"}},
        ])
    )
    @settings(max_examples=5, deadline=None)
    def test_credential_errors(self, error: dict) -> None:
        assert is_credential_error(error)
        try:
            run_client(
                {"list_domains": {"success": False, "error": error}},
                lambda c: c.list_domains("acct-1", 1, 20),
            )
            assert False, "Expected CredentialError"
        except CredentialError as e:
            assert classify_error(e) is FailureKind.CREDENTIAL
            assert e.details["command"] == "list_domains"

    def test_other_backend_error_is_remote(self) -> None:
        try:
            run_client(
                {"add_domain_tag": {"success": False, "error": {
                    "code": "Provider", "details": {"code": "RateLimited", "message": "slow down"}}}},
                lambda c: c.add_tag("acct-1", "d1", "x"),
            )
            assert False, "Expected RemoteError"
        except CredentialError:
            assert False, "Not a credential error"
        except RemoteError as e:
            assert e.message == "slow down"
            assert classify_error(e) is FailureKind.REMOTE

    def test_non_json_response(self) -> None:
        try:
            run_client(
                {"list_accounts": httpx.Response(502, text="<html>bad gateway</html>")},
                lambda c: c.list_accounts(),
            )
            assert False, "Expected NetworkError"
        except NetworkError as e:
            assert e.code == "bad_response"
            assert e.details["http_status_code"] == 502
            assert classify_error(e) is FailureKind.TRANSPORT

    def test_envelope_without_success_flag(self) -> None:
        try:
            run_client({"list_providers": {"data": []}}, lambda c: c.list_providers())
            assert False, "Expected NetworkError"
        except NetworkError as e:
            assert e.code == "bad_response"

    def test_connection_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async def run():
            async with HttpRemoteClient("http://backend", transport=httpx.MockTransport(handler)) as client:
                await client.list_accounts()

        try:
            asyncio.run(run())
            assert False, "Expected NetworkError"
        except NetworkError as e:
            assert e.code == "connection_error"

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async def run():
            async with HttpRemoteClient("http://backend", timeout=1.0, transport=httpx.MockTransport(handler)) as client:
                await client.toggle_favorite("acct-1", "d1")

        try:
            asyncio.run(run())
            assert False, "Expected NetworkError"
        except NetworkError as e:
            assert e.code == "timeout"


class TestBatchFailureKindProperty:
    """Every failure kind survives the wire; anything else reads as remote."""

    @given(kind=st.sampled_from(list(FailureKind)))
    @settings(max_examples=10, deadline=None)
    def test_every_kind_parsed(self, kind: FailureKind) -> None:
        responses = {"batch_add_domain_tags": {"success": True, "data": {
            "successCount": 0, "failedCount": 1,
            "failures": [{"accountId": "acct-1", "domainId": "d1", "reason": "x", "kind": kind.value}],
        }}}

        batch, _ = run_client(
            responses,
            lambda c: c.batch_tags(TagOperation.ADD, [BatchTagRequest("acct-1", "d1", ["a"])]),
        )

        assert batch.failures[0].kind is kind
        assert batch.failure_kind is kind

    @given(raw=st.one_of(st.none(), st.text(max_size=10), st.integers(), st.lists(st.integers(), max_size=2)))
    @settings(max_examples=50, deadline=None)
    def test_unknown_kind_is_remote(self, raw) -> None:
        failure = {"accountId": "acct-1", "domainId": "d1", "reason": "x"}
        if raw is not None:
            failure["kind"] = raw
        result = BatchTagResult.from_dict({"failures": [failure]})

        known = {k.value: k for k in FailureKind}
        expected = known[raw] if isinstance(raw, str) and raw in known else FailureKind.REMOTE
        assert result.failures[0].kind is expected
        assert result.failed_count == 1

    def test_mixed_kinds_summarize_as_remote(self) -> None:
        result = BatchTagResult(0, 2, [
            BatchTagFailure("acct-1", "d1", "x", FailureKind.CREDENTIAL),
            BatchTagFailure("acct-2", "d2", "y", FailureKind.VALIDATION),
        ])
        assert result.failure_kind is FailureKind.REMOTE
        assert BatchTagResult(1, 0).failure_kind is FailureKind.REMOTE

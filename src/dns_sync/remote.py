"""
Remote backend boundary.

The sync layer never talks to DNS providers directly. It invokes named
commands on a backend that owns the credentials and the provider API
clients. RemoteClient is the protocol the rest of the package depends on;
HttpRemoteClient implements it over HTTP.

Wire format:
    POST {base_url}/invoke/{command}   body: camelCase JSON arguments
    response: {"success": bool, "data": ..., "error": {"code", "details"}}
"""

from typing import Any, Optional, Protocol

import httpx

from .enums import TagOperation
from .exceptions import CredentialError, NetworkError, RemoteError
from .models import (
    Account,
    BatchDeleteResult,
    BatchTagRequest,
    BatchTagResult,
    DnsRecord,
    DnsRecordDraft,
    Domain,
    DomainMetadata,
    DomainMetadataUpdate,
    Page,
)

CREDENTIAL_ERROR_CODE = "InvalidCredentials"

BATCH_TAG_COMMANDS = {
    TagOperation.ADD: "batch_add_domain_tags",
    TagOperation.REMOVE: "batch_remove_domain_tags",
    TagOperation.REPLACE: "batch_set_domain_tags",
}


class RemoteClient(Protocol):
    """Operations the sync layer needs from the backend."""

    async def list_accounts(self) -> list[Account]: ...

    async def list_providers(self) -> list[dict]: ...

    async def list_domains(self, account_id: str, page: int, page_size: int) -> Page[Domain]: ...

    async def list_records(
        self,
        account_id: str,
        domain_id: str,
        page: int,
        page_size: int,
        keyword: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> Page[DnsRecord]: ...

    async def update_metadata(
        self, account_id: str, domain_id: str, update: DomainMetadataUpdate
    ) -> DomainMetadata: ...

    async def toggle_favorite(self, account_id: str, domain_id: str) -> bool: ...

    async def add_tag(self, account_id: str, domain_id: str, tag: str) -> list[str]: ...

    async def remove_tag(self, account_id: str, domain_id: str, tag: str) -> list[str]: ...

    async def set_tags(self, account_id: str, domain_id: str, tags: list[str]) -> list[str]: ...

    async def batch_tags(
        self, mode: TagOperation, requests: list[BatchTagRequest]
    ) -> BatchTagResult: ...

    async def create_record(self, account_id: str, draft: DnsRecordDraft) -> DnsRecord: ...

    async def update_record(
        self, account_id: str, record_id: str, draft: DnsRecordDraft
    ) -> DnsRecord: ...

    async def delete_record(self, account_id: str, record_id: str, domain_id: str) -> None: ...

    async def batch_delete_records(
        self, account_id: str, domain_id: str, record_ids: list[str]
    ) -> BatchDeleteResult: ...


def is_credential_error(error: Optional[dict]) -> bool:
    """
    True if a backend error object reports rejected credentials.

    Matches both the top-level code and a provider error wrapping it.
    """
    if not isinstance(error, dict):
        return False
    if error.get("code") == CREDENTIAL_ERROR_CODE:
        return True
    details = error.get("details")
    return (
        error.get("code") == "Provider"
        and isinstance(details, dict)
        and details.get("code") == CREDENTIAL_ERROR_CODE
    )


def error_message(error: Optional[dict]) -> str:
    """Best human-readable message carried by a backend error object."""
    if not isinstance(error, dict):
        return "Unknown backend error"
    details = error.get("details")
    if isinstance(details, str) and details:
        return details
    if isinstance(details, dict):
        for key in ("message", "raw_message", "detail"):
            if details.get(key):
                return str(details[key])
    return str(error.get("code") or "Unknown backend error")


def raise_for_error(command: str, error: Optional[dict]) -> None:
    """
    Raise the structured exception matching a backend error object.

    Raises:
        CredentialError: If the provider rejected the credentials
        RemoteError: For every other application-level error
    """
    error = error if isinstance(error, dict) else {}
    details = error.get("details")
    info: dict[str, Any] = {"command": command}
    if isinstance(details, dict):
        info.update(details)
    elif details is not None:
        info["detail"] = details

    code = str(error.get("code") or "Unknown")
    if is_credential_error(error):
        raise CredentialError(code=CREDENTIAL_ERROR_CODE, message=error_message(error), details=info)
    raise RemoteError(code=code, message=error_message(error), details=info)


def _parse_page(data: dict, item_parser) -> Page:
    return Page(
        items=[item_parser(item) for item in data.get("items", [])],
        page=int(data.get("page", 1)),
        page_size=int(data.get("pageSize", 0)),
        total_count=int(data.get("totalCount", 0)),
        has_more=bool(data.get("hasMore", False)),
    )


class HttpRemoteClient:
    """
    Async HTTP implementation of RemoteClient.

    Usage:
        async with HttpRemoteClient(base_url) as client:
            page = await client.list_domains("acct-1", 1, 20)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Backend root URL
            timeout: Request timeout in seconds
            headers: Extra headers sent with every request
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HttpRemoteClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={"Accept": "application/json", **self._headers},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def invoke(self, command: str, args: Optional[dict] = None) -> Any:
        """
        Invoke a backend command and unwrap its response envelope.

        Returns:
            The envelope's data

        Raises:
            NetworkError: If the backend cannot be reached or answers garbage
            CredentialError: If the provider rejected the account's credentials
            RemoteError: If the backend reports any other error
        """
        client = self._ensure_client()
        url = f"{self._base_url}/invoke/{command}"

        try:
            response = await client.post(url, json=args or {})
        except httpx.TimeoutException:
            raise NetworkError(
                code="timeout",
                message=f"Backend request timed out after {self._timeout}s",
                details={"command": command},
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                code="connection_error",
                message=f"Backend connection error: {e}",
                details={"command": command},
            )

        try:
            envelope = response.json()
        except ValueError:
            raise NetworkError(
                code="bad_response",
                message=f"Backend returned non-JSON response (HTTP {response.status_code})",
                details={"command": command, "http_status_code": response.status_code},
            )

        if not isinstance(envelope, dict) or "success" not in envelope:
            raise NetworkError(
                code="bad_response",
                message="Backend response is missing the success flag",
                details={"command": command, "http_status_code": response.status_code},
            )

        if not envelope["success"]:
            raise_for_error(command, envelope.get("error"))

        return envelope.get("data")

    async def list_accounts(self) -> list[Account]:
        data = await self.invoke("list_accounts")
        return [Account.from_dict(a) for a in data or []]

    async def list_providers(self) -> list[dict]:
        return list(await self.invoke("list_providers") or [])

    async def list_domains(self, account_id: str, page: int, page_size: int) -> Page[Domain]:
        data = await self.invoke(
            "list_domains",
            {"accountId": account_id, "page": page, "pageSize": page_size},
        )
        return _parse_page(data or {}, Domain.from_dict)

    async def list_records(
        self,
        account_id: str,
        domain_id: str,
        page: int,
        page_size: int,
        keyword: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> Page[DnsRecord]:
        data = await self.invoke(
            "list_dns_records",
            {
                "accountId": account_id,
                "domainId": domain_id,
                "page": page,
                "pageSize": page_size,
                "keyword": keyword or None,
                "recordType": record_type or None,
            },
        )
        return _parse_page(data or {}, DnsRecord.from_dict)

    async def update_metadata(
        self, account_id: str, domain_id: str, update: DomainMetadataUpdate
    ) -> DomainMetadata:
        data = await self.invoke(
            "update_domain_metadata",
            {"accountId": account_id, "domainId": domain_id, "update": update.to_dict()},
        )
        return DomainMetadata.from_dict(data or {})

    async def toggle_favorite(self, account_id: str, domain_id: str) -> bool:
        data = await self.invoke(
            "toggle_domain_favorite", {"accountId": account_id, "domainId": domain_id}
        )
        return bool(data)

    async def add_tag(self, account_id: str, domain_id: str, tag: str) -> list[str]:
        data = await self.invoke(
            "add_domain_tag", {"accountId": account_id, "domainId": domain_id, "tag": tag}
        )
        return list(data or [])

    async def remove_tag(self, account_id: str, domain_id: str, tag: str) -> list[str]:
        data = await self.invoke(
            "remove_domain_tag", {"accountId": account_id, "domainId": domain_id, "tag": tag}
        )
        return list(data or [])

    async def set_tags(self, account_id: str, domain_id: str, tags: list[str]) -> list[str]:
        data = await self.invoke(
            "set_domain_tags", {"accountId": account_id, "domainId": domain_id, "tags": tags}
        )
        return list(data or [])

    async def batch_tags(
        self, mode: TagOperation, requests: list[BatchTagRequest]
    ) -> BatchTagResult:
        data = await self.invoke(
            BATCH_TAG_COMMANDS[mode], {"requests": [r.to_dict() for r in requests]}
        )
        return BatchTagResult.from_dict(data or {})

    async def create_record(self, account_id: str, draft: DnsRecordDraft) -> DnsRecord:
        data = await self.invoke(
            "create_dns_record", {"accountId": account_id, "request": draft.to_dict()}
        )
        return DnsRecord.from_dict(data)

    async def update_record(
        self, account_id: str, record_id: str, draft: DnsRecordDraft
    ) -> DnsRecord:
        data = await self.invoke(
            "update_dns_record",
            {"accountId": account_id, "recordId": record_id, "request": draft.to_dict()},
        )
        return DnsRecord.from_dict(data)

    async def delete_record(self, account_id: str, record_id: str, domain_id: str) -> None:
        await self.invoke(
            "delete_dns_record",
            {"accountId": account_id, "recordId": record_id, "domainId": domain_id},
        )

    async def batch_delete_records(
        self, account_id: str, domain_id: str, record_ids: list[str]
    ) -> BatchDeleteResult:
        data = await self.invoke(
            "batch_delete_dns_records",
            {"accountId": account_id, "request": {"domainId": domain_id, "recordIds": record_ids}},
        )
        return BatchDeleteResult.from_dict(data or {})

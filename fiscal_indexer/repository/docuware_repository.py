from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx

from fiscal_indexer.repository.base import BaseDocumentRepository
from fiscal_indexer.repository.connection import ConnectionProvider
from fiscal_indexer.repository.exceptions import (
    DocumentNotFoundError,
    RepositoryError,
    RepositoryWriteError,
)
from fiscal_indexer.repository.models import DocumentContent

DATE_FIELDS = frozenset({"DATE"})


class DocuWareRepository(BaseDocumentRepository):
    """Document repository backed by the DocuWare Platform REST API."""

    def __init__(self, connection: ConnectionProvider) -> None:
        self._connection = connection

    def list_recent_document_ids(self, cabinet_id: str, count: int) -> list[int]:
        response = self._request(
            "GET",
            f"FileCabinets/{cabinet_id}/Documents",
            params={"count": count, "sortOrder": "DWSTOREDATETIME Desc", "fields": "DWDOCID"},
        )
        items = response.json().get("Items") or []
        return [int(item["Id"]) for item in items][:count]

    def get_document_content(self, document_id: int, cabinet_id: str) -> DocumentContent:
        response = self._request(
            "GET",
            f"FileCabinets/{cabinet_id}/Documents/{document_id}/FileDownload",
            params={"targetFileType": "Auto", "keepAnnotations": "false"},
        )
        return DocumentContent(
            data=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream"),
        )

    def get_index_fields(self, document_id: int, cabinet_id: str) -> dict[str, str | None]:
        response = self._request("GET", f"FileCabinets/{cabinet_id}/Documents/{document_id}")
        fields: dict[str, str | None] = {}
        for field in response.json().get("Fields") or []:
            item = field.get("Item")
            is_null = field.get("IsNull", False) or item is None
            fields[field["FieldName"]] = None if is_null else str(item)
        return fields

    def write_index_fields(
        self, document_id: int, cabinet_id: str, fields: Mapping[str, str]
    ) -> None:
        payload = {"Field": [_field_payload(name, value) for name, value in fields.items()]}
        self._request(
            "PUT",
            f"FileCabinets/{cabinet_id}/Documents/{document_id}/Fields",
            error_cls=RepositoryWriteError,
            json=payload,
        )

    def _request(
        self,
        method: str,
        url: str,
        error_cls: type[RepositoryError] = RepositoryError,
        **kwargs: Any,
    ) -> httpx.Response:
        client = self._connection.get_client()
        try:
            response = client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise DocumentNotFoundError(f"{method} {url} returned 404") from exc
            raise error_cls(f"{method} {url} failed with status {status}") from exc
        except httpx.HTTPError as exc:
            raise error_cls(f"{method} {url} failed: {exc}") from exc
        return response


def _field_payload(name: str, value: str) -> dict[str, str]:
    if name in DATE_FIELDS:
        iso = datetime.strptime(value, "%d/%m/%Y").date().isoformat()
        return {"FieldName": name, "Item": iso, "ItemElementName": "Date"}
    return {"FieldName": name, "Item": value, "ItemElementName": "String"}

from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentContent:
    data: bytes
    content_type: str = "application/octet-stream"

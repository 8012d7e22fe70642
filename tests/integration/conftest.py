from pathlib import Path

import pytest

from fiscal_indexer.config.settings import Settings


@pytest.fixture
def integration_settings(tmp_path: Path) -> Settings:
    """Pipeline settings reading the PDF text layer and auditing into tmp_path."""
    return Settings(
        ocr_engine="pdfplumber",
        docuware_cabinet_id="invoices",
        audit_directory=str(tmp_path / "audit"),
    )

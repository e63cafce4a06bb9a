from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

import app.main as cli
from app.config import Settings
from app.extraction_service import ExtractionError
from schemas.invoice_schema import InvoiceRecord


class _FakeExtractor:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error
        self.mime_types: list[str] = []

    async def extract(self, data: bytes, mime_type: str) -> InvoiceRecord:
        self.mime_types.append(mime_type)
        if self._error is not None:
            raise self._error
        return InvoiceRecord.model_validate(
            {
                "vendorName": "Acme",
                "totalAmount": 150,
                "items": [
                    {
                        "fam": "01",
                        "descriptionEn": "Bolt",
                        "descriptionAr": "برغي",
                        "quantity": 10,
                        "unitPrice": 15,
                        "total": 150,
                    }
                ],
            }
        )


@pytest.fixture
def invoice_file(tmp_path: Path) -> Path:
    path = tmp_path / "invoice.pdf"
    path.write_bytes(b"%PDF-1.4")
    return path


def test_extract_writes_csv(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, invoice_file: Path) -> None:
    extractor = _FakeExtractor()
    monkeypatch.setattr(cli, "build_extractor", lambda settings: extractor)
    out = tmp_path / "out" / "result.csv"

    code = cli.run_extract(Settings(), str(invoice_file), str(out))

    assert code == 0
    assert extractor.mime_types == ["application/pdf"]
    content = out.read_bytes()
    assert content.startswith(b"\xef\xbb\xbf")
    assert '="01"' in content.decode("utf-8")


def test_extract_defaults_to_dated_filename(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, invoice_file: Path
) -> None:
    monkeypatch.setattr(cli, "build_extractor", lambda settings: _FakeExtractor())
    monkeypatch.chdir(tmp_path)

    assert cli.run_extract(Settings(), str(invoice_file)) == 0
    assert (tmp_path / f"invoice_extract_{date.today().isoformat()}.csv").exists()


def test_extract_reports_missing_file(tmp_path: Path) -> None:
    assert cli.run_extract(Settings(), str(tmp_path / "nope.png")) == 2


def test_extract_failure_returns_nonzero(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, invoice_file: Path
) -> None:
    extractor = _FakeExtractor(error=ExtractionError("bad json", code="invalid_json"))
    monkeypatch.setattr(cli, "build_extractor", lambda settings: extractor)
    out = tmp_path / "result.csv"

    assert cli.run_extract(Settings(), str(invoice_file), str(out)) == 1
    assert not out.exists()


def test_main_serve_applies_host_and_port(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[Settings] = []
    monkeypatch.setattr(cli, "run_serve", lambda settings: seen.append(settings) or 0)
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("HOST", raising=False)

    code = cli.main(["--env-file", str(tmp_path / "none.env"), "serve", "--host", "0.0.0.0", "--port", "9001"])

    assert code == 0
    assert (seen[0].host, seen[0].port) == ("0.0.0.0", 9001)


def test_main_requires_subcommand() -> None:
    with pytest.raises(SystemExit):
        cli.main([])

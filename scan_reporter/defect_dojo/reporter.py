from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .client import ERROR_TEXT_LIMIT, DefectDojoClient, error_text
from .errors import ResolutionError

logger = logging.getLogger(__name__)

IMPORTED = "imported"
FAILED = "failed"
SKIPPED = "skipped"


class ScanFile(Enum):
    """Scan outputs the reporter knows about: (kind, file name, DefectDojo scan type)."""

    TRIVY = ("trivy", "trivy.json", "Trivy Scan")
    SEMGREP = ("semgrep", "semgrep.json", "Semgrep JSON Report")
    TRUFFLEHOG = ("trufflehog", "trufflehog.json", "Trufflehog Scan")

    def __init__(self, kind: str, filename: str, scan_type: str) -> None:
        self.kind = kind
        self.filename = filename
        self.scan_type = scan_type


@dataclass
class FileImportResult:
    scan_type: str
    report_path: str
    status: str
    test_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == IMPORTED

    @property
    def skipped(self) -> bool:
        return self.status == SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "status": self.status, "scan_type": self.scan_type}
        if self.test_id is not None:
            out["test_id"] = self.test_id
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class ReportResult:
    """Outcome of one reporter run.

    ``success`` only says the run got as far as the import phase. Per-scanner
    outcomes are in ``results``.
    """

    success: bool
    results: Dict[str, FileImportResult] = field(default_factory=dict)
    error: Optional[str] = None
    engagement_id: Optional[int] = None
    dashboard_url: Optional[str] = None

    @property
    def failed(self) -> List[str]:
        return [kind for kind, res in self.results.items() if res.status == FAILED]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "results": {kind: res.to_dict() for kind, res in self.results.items()},
        }
        if self.error:
            out["error"] = self.error
        if self.engagement_id is not None:
            out["engagement_id"] = self.engagement_id
        if self.dashboard_url:
            out["dashboard_url"] = self.dashboard_url
        return out


class ScanReporter(DefectDojoClient):
    """Resolve an existing engagement and import every scan report found for a build."""

    def resolve(self, product_name: str, engagement_name: str) -> int:
        return self.resolve_engagement(product_name, engagement_name)

    def dashboard_url(self, product_name: str) -> str:
        return f"{self.base}/product/{quote(product_name, safe='')}"

    def import_file(self, engagement_id: int, report_path: str, scan_type: str,
                    build_id: Optional[str] = None) -> FileImportResult:
        if not os.path.isfile(report_path):
            logger.info("%s report not found, skipping: %s", scan_type, report_path)
            return FileImportResult(scan_type, report_path, SKIPPED)

        logger.info("Importing %s results from %s", scan_type, report_path)
        try:
            r = self.import_scan(engagement_id, scan_type, report_path, build_id=build_id)
        except (requests.RequestException, OSError) as exc:
            logger.error("Error importing %s: %s", scan_type, exc)
            return FileImportResult(scan_type, report_path, FAILED, error=str(exc))

        if not r.ok:
            err = error_text(r)
            logger.error("Error importing %s: %s", scan_type, err)
            return FileImportResult(scan_type, report_path, FAILED, error=err)

        try:
            body = r.json()
        except ValueError:
            body = None
        test_id = body.get("test_id") if isinstance(body, dict) else None
        if not test_id:
            raw = (r.text or "").strip()[:ERROR_TEXT_LIMIT]
            logger.warning("%s import returned no test_id: %s", scan_type, raw)
            return FileImportResult(scan_type, report_path, FAILED, error=raw or "empty response")

        try:
            test_id = int(test_id)
        except (TypeError, ValueError):
            raw = (r.text or "").strip()[:ERROR_TEXT_LIMIT]
            logger.warning("%s import returned a non-numeric test_id: %s", scan_type, raw)
            return FileImportResult(scan_type, report_path, FAILED, error=raw)

        logger.info("Imported %s (test id: %s)", scan_type, test_id)
        return FileImportResult(scan_type, report_path, IMPORTED, test_id=test_id)

    def run(self, product_name: str, engagement_name: str, report_dir: str,
            build_id: Optional[str] = None) -> ReportResult:
        missing = [label for label, value in (("product name", product_name),
                                              ("engagement name", engagement_name),
                                              ("report directory", report_dir)) if not value]
        if missing:
            err = f"Missing required configuration: {', '.join(missing)}"
            logger.error(err)
            return ReportResult(success=False, error=err)

        dashboard = self.dashboard_url(product_name)
        logger.info("Push to DefectDojo: url=%s product=%s engagement=%s reports=%s",
                    self.base, product_name, engagement_name, report_dir)

        try:
            engagement_id = self.resolve(product_name, engagement_name)
        except ResolutionError as exc:
            logger.error("%s. Skipping DefectDojo import.", exc)
            return ReportResult(success=False, error=str(exc), dashboard_url=dashboard)

        results: Dict[str, FileImportResult] = {}
        for scan in ScanFile:
            report_path = os.path.join(report_dir, scan.filename)
            results[scan.kind] = self.import_file(engagement_id, report_path, scan.scan_type, build_id=build_id)

        self._log_directory(report_dir)
        result = ReportResult(success=True, results=results, engagement_id=engagement_id,
                              dashboard_url=dashboard)
        imported = sum(1 for r in results.values() if r.success)
        skipped = sum(1 for r in results.values() if r.skipped)
        logger.info("DefectDojo import completed: %d imported, %d failed, %d skipped. Dashboard: %s",
                    imported, len(result.failed), skipped, dashboard)
        return result

    @staticmethod
    def _log_directory(report_dir: str) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        if os.path.isdir(report_dir):
            logger.debug("Available files in %s: %s", report_dir, sorted(os.listdir(report_dir)))
        else:
            logger.debug("Report directory not found: %s", report_dir)

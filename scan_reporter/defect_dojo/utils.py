"""Configuration loading and the top-level push driver."""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import yaml  # type: ignore

from .client import MATCH_POLICIES, DojoConfig
from .errors import ConfigurationError
from .reporter import ReportResult, ScanReporter

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIAL_ID = "DEFECTDOJO_TOKEN"


@dataclass
class ReporterConfig:
    dojo: DojoConfig
    product_name: str = ""
    engagement_name: str = ""
    report_dir: str = ""
    build_number: str = "1"
    credential_id: str = DEFAULT_CREDENTIAL_ID

    @property
    def build_report_dir(self) -> str:
        """Raw scan outputs of one build: <report_dir>/<build_number>/raw."""
        return os.path.join(self.report_dir, str(self.build_number), "raw")


def _parse_bool(v: Optional[str], default: bool) -> bool:
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _first(*values: Any) -> Any:
    for v in values:
        if v not in (None, ""):
            return v
    return None


def load_reporter_config(config_path: Optional[str] = None, **overrides: Any) -> ReporterConfig:
    """Build a ReporterConfig from YAML, then env variables, then explicit overrides.

    The YAML file is optional and has two sections::

        defectdojo:
          url: https://dojo.example
          verify_ssl: true
          timeout: 60
          match_policy: first
        report:
          product_name: Acme
          engagement_name: CI Scans
          report_dir: /srv/securityreports/acme
          credential_id: DEFECTDOJO_TOKEN

    Overrides use the same key names; ``url`` and ``match_policy`` apply to
    the defectdojo section. ``None`` overrides are ignored.
    """
    data: dict = {}
    if config_path:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Failed to parse configuration {config_path}: {exc}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration {config_path} must be a mapping")

    dd = data.get("defectdojo", {}) or {}
    rep = data.get("report", {}) or {}
    env = os.environ

    url = _first(overrides.get("url"), env.get("DEFECTDOJO_URL"), dd.get("url"))
    if not url:
        raise ConfigurationError("Missing DefectDojo URL (defectdojo.url or DEFECTDOJO_URL).")

    verify_ssl = _parse_bool(env.get("DEFECTDOJO_VERIFY_SSL"), bool(dd.get("verify_ssl", True)))
    try:
        timeout = float(_first(overrides.get("timeout"), env.get("DEFECTDOJO_TIMEOUT"), dd.get("timeout"), 60))
        max_retries = int(_first(dd.get("max_retries"), 0))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid numeric DefectDojo setting: {exc}")

    match_policy = _first(overrides.get("match_policy"), dd.get("match_policy"), "first")
    if match_policy not in MATCH_POLICIES:
        logger.warning("Unknown match_policy '%s'; falling back to 'first'", match_policy)
        match_policy = "first"

    dojo = DojoConfig(
        url=str(url).rstrip("/"),
        verify_ssl=verify_ssl,
        timeout=timeout,
        max_retries=max_retries,
        match_policy=match_policy,
        minimum_severity=_first(env.get("DEFECTDOJO_MIN_SEVERITY"), dd.get("minimum_severity")),
    )
    return ReporterConfig(
        dojo=dojo,
        product_name=_first(overrides.get("product_name"), env.get("DEFECTDOJO_PRODUCT"),
                            rep.get("product_name")) or "",
        engagement_name=_first(overrides.get("engagement_name"), env.get("DEFECTDOJO_ENGAGEMENT"),
                               rep.get("engagement_name")) or "",
        report_dir=_first(overrides.get("report_dir"), env.get("DEFECTDOJO_REPORT_DIR"),
                          rep.get("report_dir")) or "",
        build_number=str(_first(overrides.get("build_number"), env.get("BUILD_NUMBER"), "1")),
        credential_id=_first(overrides.get("credential_id"), rep.get("credential_id"),
                             DEFAULT_CREDENTIAL_ID),
    )


@contextmanager
def api_token(credential_id: str) -> Iterator[str]:
    """Read the API token named by ``credential_id`` for the duration of the block."""
    token = os.environ.get(credential_id) or ""
    if not token:
        raise ConfigurationError(f"Missing API token: environment variable {credential_id} is not set.")
    yield token


def push_reports(config: ReporterConfig) -> ReportResult:
    """Import the raw scan outputs of one build into DefectDojo.

    Problems are returned in the result rather than raised, so the caller
    decides whether a partial import should fail the build.
    """
    missing = [name for name in ("product_name", "engagement_name", "report_dir") if not getattr(config, name)]
    if missing:
        err = f"Missing required configuration: {', '.join(missing)}"
        logger.error(err)
        return ReportResult(success=False, error=err)

    try:
        with api_token(config.credential_id) as token, ScanReporter(config.dojo, token) as reporter:
            return reporter.run(config.product_name, config.engagement_name, config.build_report_dir,
                                build_id=config.build_number)
    except ConfigurationError as exc:
        logger.error(str(exc))
        return ReportResult(success=False, error=str(exc))

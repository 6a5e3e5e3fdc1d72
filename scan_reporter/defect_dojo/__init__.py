"""
DefectDojo reporting for CI security scans.
- DefectDojoClient: REST session, product/engagement lookup, import-scan upload
- ScanReporter: resolve the engagement once, import each known scan report
- utils: YAML/env configuration and the push_reports driver
"""
from .client import DefectDojoClient, DojoConfig
from .errors import AmbiguousMatchError, ConfigurationError, DojoReporterError, ResolutionError
from .reporter import FileImportResult, ReportResult, ScanFile, ScanReporter
from .utils import ReporterConfig, load_reporter_config, push_reports

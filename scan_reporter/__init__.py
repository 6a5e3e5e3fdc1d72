"""Push CI security scan reports (Trivy, Semgrep, TruffleHog) to DefectDojo."""

__version__ = "0.1.0"

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
import urllib3

from .errors import AmbiguousMatchError, ResolutionError

logger = logging.getLogger(__name__)
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

MATCH_POLICIES = ("first", "unique")
ERROR_TEXT_LIMIT = 500


@dataclass
class DojoConfig:
    url: str
    verify_ssl: bool = True
    timeout: float = 60.0
    max_retries: int = 0
    match_policy: str = "first"  # first | unique
    minimum_severity: Optional[str] = None


def error_text(response: requests.Response) -> str:
    """Short error text for logs and results; the body is cut to ERROR_TEXT_LIMIT chars."""
    body = (response.text or "").strip()
    return f"HTTP {response.status_code}: {body[:ERROR_TEXT_LIMIT]}"


def _make_adapter(max_retries: int) -> HTTPAdapter:
    # raise_on_status=False: once retries are spent the last response is handed back
    retry = urllib3.Retry(total=max_retries, backoff_factor=0.3,
                          status_forcelist=(429, 500, 502, 503, 504),
                          raise_on_status=False)
    return HTTPAdapter(max_retries=retry)


class DefectDojoClient:
    """REST client for the parts of the DefectDojo v2 API the reporter needs.

    The API token lives on the session only while the client is open. Use it
    as a context manager so the session is closed and the Authorization
    header dropped when the run is over.
    """

    def __init__(self, cfg: DojoConfig, token: str) -> None:
        self.cfg = cfg
        self.base = cfg.url.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Token {token}"})
        self.session.verify = cfg.verify_ssl
        adapter = _make_adapter(cfg.max_retries)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __enter__(self) -> "DefectDojoClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.headers.pop("Authorization", None)
        self.session.close()

    def _get(self, path: str, **params: Any) -> Dict[str, Any]:
        r = self.session.get(f"{self.base}/api/v2/{path}", params=params, timeout=self.cfg.timeout)
        r.raise_for_status()
        return r.json()

    # ---------- Products ----------
    def list_products(self, **params: Any) -> Dict[str, Any]:
        return self._get("products/", **params)

    def get_product_by_name(self, product_name: str) -> Optional[Dict[str, Any]]:
        matches = self._find_by_name(self.list_products, product_name)
        return self._pick("product", product_name, matches)

    # ---------- Engagements ----------
    def get_engagements(self, **params: Any) -> Dict[str, Any]:
        return self._get("engagements/", **params)

    def get_engagement_by_name(self, product_id: int, engagement_name: str) -> Optional[Dict[str, Any]]:
        matches = self._find_by_name(self.get_engagements, engagement_name, product=product_id)
        return self._pick("engagement", engagement_name, matches)

    def resolve_engagement(self, product_name: str, engagement_name: str) -> int:
        """Look up the engagement id for (product, engagement). Never creates either.

        Raises ResolutionError when either lookup finds nothing or the API
        call fails, AmbiguousMatchError when the match policy is "unique" and
        a name is shared.
        """
        try:
            logger.info("Fetching product: %s", product_name)
            product = self.get_product_by_name(product_name)
            if product is None:
                raise ResolutionError(f"Product '{product_name}' not found in DefectDojo")
            logger.info("Found product id: %s", product["id"])

            logger.info("Fetching engagement: %s", engagement_name)
            engagement = self.get_engagement_by_name(int(product["id"]), engagement_name)
            if engagement is None:
                raise ResolutionError(
                    f"Engagement '{engagement_name}' not found for product '{product_name}'")
            logger.info("Found engagement id: %s", engagement["id"])
            return int(engagement["id"])
        except requests.HTTPError as exc:
            raise ResolutionError(f"DefectDojo lookup failed: {error_text(exc.response)}") from exc
        except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ResolutionError(f"DefectDojo lookup failed: {exc!r}") from exc

    def _find_by_name(self, lister: Callable[..., Dict[str, Any]], name: str,
                      **filters: Any) -> List[Dict[str, Any]]:
        limit, offset = 200, 0
        matches: List[Dict[str, Any]] = []
        while True:
            data = lister(name=name, limit=limit, offset=offset, **filters)
            if not isinstance(data, dict) or not isinstance(data.get("results", []), list):
                raise ResolutionError(
                    f"Unexpected DefectDojo response for '{name}': {str(data)[:ERROR_TEXT_LIMIT]}")
            matches.extend(item for item in data.get("results", [])
                           if isinstance(item, dict) and item.get("name") == name)
            if not data.get("next"):
                break
            offset += limit
        return matches

    def _pick(self, kind: str, name: str, matches: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not matches:
            return None
        if len(matches) > 1:
            ids = [m.get("id") for m in matches]
            if self.cfg.match_policy == "unique":
                raise AmbiguousMatchError(f"{len(matches)} {kind}s named '{name}' (ids {ids})")
            logger.warning("%d %ss named '%s' (ids %s); using the first one (id=%s)",
                           len(matches), kind, name, ids, matches[0].get("id"))
        return matches[0]

    # ---------- Importers ----------
    def import_scan(self, engagement_id: int, scan_type: str, report_path: str,
                    build_id: Optional[str] = None) -> requests.Response:
        """POST one report to /import-scan/. The response is returned unchecked."""
        data = {
            "engagement": str(engagement_id),
            "scan_type": scan_type,
            "active": "true",
            "verified": "false",
            "close_old_findings": "false",
            "push_to_jira": "false",
        }
        if self.cfg.minimum_severity:
            data["minimum_severity"] = self.cfg.minimum_severity
        if build_id:
            data["build_id"] = build_id
        logger.debug("import-scan payload: %s", data)
        with open(report_path, "rb") as fh:
            files = {"file": (os.path.basename(report_path), fh, "application/json")}
            return self.session.post(f"{self.base}/api/v2/import-scan/", data=data, files=files,
                                     timeout=self.cfg.timeout)

from dotenv import load_dotenv
import argparse
import json
import logging
import sys

from scan_reporter.defect_dojo.utils import load_reporter_config, push_reports

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Import the raw Trivy, Semgrep and TruffleHog reports of a build "
            "into an existing DefectDojo engagement."
        )
    )
    parser.add_argument(
        "--config",
        required=False,
        help="Path to the reporter configuration YAML (defectdojo + report sections).",
    )
    parser.add_argument("--product_name", help="Existing DefectDojo product name.")
    parser.add_argument("--engagement_name", help="Existing engagement name under the product.")
    parser.add_argument(
        "--report_dir",
        help="Base report directory. Files are read from <report_dir>/<build_number>/raw.",
    )
    parser.add_argument("--build_number", help="Build number. Defaults to BUILD_NUMBER or 1.")
    parser.add_argument("--dojo_url", help="DefectDojo base URL. Overrides DEFECTDOJO_URL.")
    parser.add_argument(
        "--credential_id",
        help="Name of the environment variable holding the API token (default DEFECTDOJO_TOKEN).",
    )
    parser.add_argument(
        "--match_policy",
        choices=("first", "unique"),
        help="What to do when several products or engagements share a name.",
    )
    parser.add_argument(
        "--env_file",
        default=".env",
        help="dotenv file loaded before reading the environment.",
    )
    parser.add_argument("--log_level", required=False, help="Logging level, e.g. DEBUG or INFO.")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    load_dotenv(dotenv_path=args.env_file)

    try:
        config = load_reporter_config(
            args.config,
            url=args.dojo_url,
            product_name=args.product_name,
            engagement_name=args.engagement_name,
            report_dir=args.report_dir,
            build_number=args.build_number,
            credential_id=args.credential_id,
            match_policy=args.match_policy,
        )
    except ValueError as exc:
        logger.error(str(exc))
        return 1

    result = push_reports(config)
    print(json.dumps(result.to_dict(), indent=2))
    if result.dashboard_url:
        logger.info("Dashboard: %s", result.dashboard_url)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())

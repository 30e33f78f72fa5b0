#!/usr/bin/env python3
"""
Command-line client for the venue photo backfill endpoint.
Triggers a backfill run on a running Venue Reviews API and prints the per-venue outcome.
"""

import argparse
import json
import sys
from typing import Any, Dict, Optional

import requests

from venue_reviews.logger import json_logger as logger

API_BASE = "http://localhost:8765"


def build_params(limit: int, venue_id: Optional[str], use_ai: bool, force: bool) -> Dict[str, Any]:
    params: Dict[str, Any] = {"limit": limit}
    if venue_id:
        params["venueId"] = venue_id
    if not use_ai:
        params["ai"] = "0"
    if force:
        params["force"] = "1"
    return params


def run_backfill(base_url: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}/api/backfill-venue-photos"
    logger.info(f"POST {url} params={params}")
    response = requests.post(url, params=params, timeout=timeout)
    if not response.ok:
        logger.error(f"Backfill request failed: HTTP {response.status_code} {response.text}")
        response.raise_for_status()
    return response.json()


def print_summary(summary: Dict[str, Any]) -> None:
    if summary.get("message"):
        print(summary["message"])
    print(
        f"processed={summary.get('processed', 0)} "
        f"successful={summary.get('successful', 0)} "
        f"failed={summary.get('failed', 0)}"
    )
    for result in summary.get("results", []):
        mark = "OK  " if result.get("success") else "FAIL"
        detail = result.get("photoUrl") if result.get("success") else result.get("error")
        print(f"  {mark} {result.get('venueName')} ({result.get('venueId')}): {detail}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Backfill missing venue photos.")
    parser.add_argument("--base-url", default=API_BASE, help="Venue Reviews API base URL")
    parser.add_argument("--limit", type=int, default=10, help="Maximum venues to process")
    parser.add_argument("--venue-id", default=None, help="Process only this venue (UUID)")
    parser.add_argument("--no-ai", action="store_true", help="Skip Gemini arbitration")
    parser.add_argument("--force", action="store_true", help="Replace photos venues already have")
    parser.add_argument("--timeout", type=float, default=600, help="Request timeout in seconds")
    parser.add_argument("--json", action="store_true", help="Print the raw JSON summary")
    args = parser.parse_args(argv)

    params = build_params(args.limit, args.venue_id, not args.no_ai, args.force)
    try:
        summary = run_backfill(args.base_url, params, args.timeout)
    except requests.exceptions.RequestException as e:
        logger.error(f"Backfill failed: {e}")
        return 1

    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print_summary(summary)
    return 0 if summary.get("failed", 0) == 0 else 2


if __name__ == "__main__":
    sys.exit(main())

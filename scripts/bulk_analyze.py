#!/usr/bin/env python3
"""
Bulk-analyze pages against a running GTM Analyzer service.

Reads URLs from a text file (one per line) or a CSV file (first column, or a
column named "url"), queues each one via POST /analyze, polls
GET /result/{job_id} until every job has finished and prints a summary.

Usage:
    python scripts/bulk_analyze.py urls.txt
    python scripts/bulk_analyze.py sites.csv --api-url http://localhost:3000
    python scripts/bulk_analyze.py urls.txt --sync
    python scripts/bulk_analyze.py urls.txt --dry-run
    python scripts/bulk_analyze.py urls.txt --json > results.json
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path

import httpx

from gtm_analyzer.core.exceptions import ValidationError
from gtm_analyzer.services.url_utils import validate_target_url


def read_urls(file_path: Path) -> list[str]:
    """Extract URLs from a .txt or .csv file, skipping blanks and comments."""
    text = file_path.read_text(encoding="utf-8-sig")

    if file_path.suffix.lower() == ".csv":
        rows = list(csv.reader(text.splitlines()))
        if not rows:
            return []
        header = [cell.strip().lower() for cell in rows[0]]
        if "url" in header:
            col = header.index("url")
            rows = rows[1:]
        else:
            col = 0
        candidates = [row[col] for row in rows if len(row) > col]
    else:
        candidates = text.splitlines()

    urls = []
    for raw in candidates:
        line = raw.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


def split_valid(urls: list[str]) -> tuple[list[str], list[str]]:
    valid, invalid = [], []
    for url in urls:
        try:
            valid.append(validate_target_url(url))
        except ValidationError:
            invalid.append(url)
    return valid, invalid


def run_async(client: httpx.Client, urls: list[str], poll_interval: float, max_wait: float) -> dict[str, dict]:
    """Queue every URL, then poll until all jobs leave pending."""
    jobs: dict[str, str] = {}
    results: dict[str, dict] = {}

    for url in urls:
        resp = client.post("/analyze", json={"url": url})
        if resp.status_code != 200:
            results[url] = {"status": "error", "error": f"HTTP {resp.status_code}: {resp.text[:200]}"}
            continue
        jobs[resp.json()["jobId"]] = url
        print(f"  queued  {url}", file=sys.stderr)

    deadline = time.monotonic() + max_wait
    while jobs and time.monotonic() < deadline:
        time.sleep(poll_interval)
        for job_id, url in list(jobs.items()):
            resp = client.get(f"/result/{job_id}")
            if resp.status_code == 404:
                results[url] = {"status": "error", "error": "job expired"}
                del jobs[job_id]
                continue
            resp.raise_for_status()
            data = resp.json()
            if data["status"] != "pending":
                results[url] = data
                del jobs[job_id]
                print(f"  {data['status']:<7} {url}", file=sys.stderr)

    for url in jobs.values():
        results[url] = {"status": "pending", "error": "gave up waiting"}
    return results


def run_sync(client: httpx.Client, urls: list[str]) -> dict[str, dict]:
    results: dict[str, dict] = {}
    for url in urls:
        resp = client.post("/analyze/sync", json={"url": url})
        if resp.status_code == 200:
            results[url] = {"status": "done", "result": resp.json()}
        else:
            message = resp.json().get("error", {}).get("message", resp.text[:200])
            results[url] = {"status": "error", "error": message}
        print(f"  {results[url]['status']:<7} {url}", file=sys.stderr)
    return results


def print_summary(results: dict[str, dict]) -> None:
    found = proxified = failed = 0
    print(f"{'URL':<60} {'GTM':<5} {'PROXY':<6} DOMAIN / ERROR")
    for url, data in results.items():
        if data["status"] != "done":
            failed += 1
            print(f"{url[:60]:<60} {'-':<5} {'-':<6} {data.get('error', '')}")
            continue
        result = data["result"]
        found += result["isGtmFound"]
        proxified += result["isProxified"]
        print(
            f"{url[:60]:<60} {'yes' if result['isGtmFound'] else 'no':<5} "
            f"{'yes' if result['isProxified'] else 'no':<6} {result['gtmDomain']}"
        )
    print(f"\n{len(results)} pages: {found} with GTM, {proxified} proxified, {failed} failed")


def main() -> int:
    parser = argparse.ArgumentParser(description="Bulk GTM analysis via the GTM Analyzer API")
    parser.add_argument("file", type=Path, help="Text or CSV file with URLs")
    parser.add_argument("--api-url", default="http://localhost:3000", help="Service base URL")
    parser.add_argument("--sync", action="store_true", help="Use /analyze/sync instead of queued jobs")
    parser.add_argument("--poll-interval", type=float, default=1.0, help="Seconds between polls")
    parser.add_argument("--max-wait", type=float, default=600.0, help="Give up polling after this many seconds")
    parser.add_argument("--timeout", type=float, default=30.0, help="HTTP timeout per API call")
    parser.add_argument("--dry-run", action="store_true", help="Only validate the URL list")
    parser.add_argument("--json", action="store_true", help="Print raw results as JSON")
    args = parser.parse_args()

    if not args.file.exists():
        print(f"File not found: {args.file}", file=sys.stderr)
        return 1

    valid, invalid = split_valid(read_urls(args.file))
    for url in invalid:
        print(f"  skipped (invalid URL): {url}", file=sys.stderr)
    print(f"{len(valid)} valid URLs, {len(invalid)} skipped", file=sys.stderr)

    if args.dry_run or not valid:
        return 0 if not invalid else 2

    with httpx.Client(base_url=args.api_url, timeout=args.timeout) as client:
        if args.sync:
            results = run_sync(client, valid)
        else:
            results = run_async(client, valid, args.poll_interval, args.max_wait)

    if args.json:
        json.dump(results, sys.stdout, indent=2)
        print()
    else:
        print_summary(results)
    return 0


if __name__ == "__main__":
    sys.exit(main())

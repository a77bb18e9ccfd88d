from __future__ import annotations

import argparse
import json
import os
import sys
from collections import Counter

import requests

DEFAULT_BASE_URL = os.getenv("RANK_TRACKER_BASE_URL", "http://localhost:8000")
REQUEST_TIMEOUT = (5, 60)


def fetch_preview(base_url: str, policy: str, playlist_id: str | None) -> dict:
    params = {"policy": policy, "dry_run": "true"}
    if playlist_id:
        params["playlistId"] = playlist_id
    response = requests.post(
        f"{base_url.rstrip('/')}/api/maintenance/deduplicate",
        params=params,
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


def summarize(payload: dict) -> list[str]:
    lines = [
        f"policy={payload.get('policy')} processed={payload.get('playlistsProcessed')} "
        f"changed={payload.get('playlistsChanged')} duplicates={payload.get('duplicatesRemoved')} "
        f"invalid={payload.get('invalidRemoved')}",
    ]
    for stat in payload.get("playlistStats") or []:
        lines.append(
            f"  {stat['playlistName'] or stat['playlistId']}: "
            f"{stat['originalCount']} -> {stat['newCount']} "
            f"(duplicates={stat['duplicatesRemoved']}, invalid={stat['invalidRemoved']})"
        )
    keyword_counts = Counter(
        (item["keyword"].lower(), item["territory"]) for item in payload.get("preview") or []
    )
    for (keyword, territory), count in keyword_counts.most_common(10):
        lines.append(f"  collapsed buckets {keyword}/{territory}: {count}")
    return lines


def main() -> int:
    parser = argparse.ArgumentParser(description="Preview ranking duplicates without changing data.")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--policy", default="minute", choices=["exact", "minute", "window"])
    parser.add_argument("--playlist-id", default=None)
    parser.add_argument("--json", action="store_true", help="Print the raw response.")
    args = parser.parse_args()

    try:
        payload = fetch_preview(args.base_url, args.policy, args.playlist_id)
    except requests.RequestException as exc:
        print(f"Preview request failed: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    for line in summarize(payload):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import json
from urllib import request
from urllib.error import HTTPError


def send_json(url: str, payload: dict | None = None, method: str = "POST") -> dict:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = request.Request(
        url=url,
        data=data,
        headers={"Content-Type": "application/json"},
        method=method,
    )
    with request.urlopen(req, timeout=120) as resp:
        return json.loads(resp.read().decode("utf-8"))


def print_cycle(result: dict) -> None:
    print(
        f"[CYCLE] started_at={result['started_at']} checked={result['checked']} "
        f"failed_lookups={len(result['failed_lookups'])}"
    )
    for subject in result["newly_deceased"]:
        print(f"[DECEASED] {subject['name']} death_date={subject['death_date']}")
    if not result["newly_deceased"]:
        print("[INFO] no new deaths detected")


def main() -> None:
    parser = argparse.ArgumentParser(description="Drive a running death-watch API")
    parser.add_argument("--api-base", default="http://127.0.0.1:8000")
    parser.add_argument(
        "--cadence",
        choices=["hourly", "daily", "weekly", "monthly", "disabled"],
        default=None,
        help="Change the polling cadence before anything else",
    )
    parser.add_argument(
        "--add",
        action="append",
        default=[],
        metavar="NAME",
        help="Register a living subject (repeatable)",
    )
    parser.add_argument(
        "--no-run",
        action="store_true",
        help="Skip the manual death check",
    )
    args = parser.parse_args()

    if args.cadence:
        status = send_json(
            f"{args.api_base}/v1/scheduler/cadence",
            {"cadence": args.cadence},
            method="PUT",
        )
        print(f"[INFO] scheduler state={status['state']} cadence={status['cadence']}")

    for name in args.add:
        subject = send_json(f"{args.api_base}/v1/subjects", {"name": name})
        print(f"[SUBJECT] {subject['name']} id={subject['subject_id']}")

    if args.no_run:
        return

    try:
        result = send_json(f"{args.api_base}/v1/scheduler/run-now")
    except HTTPError as error:
        if error.code == 409:
            raise SystemExit("death check already running") from error
        raise
    print_cycle(result)


if __name__ == "__main__":
    main()

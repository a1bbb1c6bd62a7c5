#!/usr/bin/env python3
"""
datagen-jobs
Command-line client for a running Data Generation Pipeline API.

Examples:
  # Submit a CSV job with 100 rows
  datagen-jobs submit --data-type csv --rows 100 --output-bucket out --output-path runs/1

  # Submit from a JSON configuration file, choosing the job id
  datagen-jobs submit --config job.json --job-id job-1

  # Poll, cancel and resume
  datagen-jobs status job-1
  datagen-jobs cancel job-1
  datagen-jobs resume job-1

  # Pipeline health, verbose
  datagen-jobs -v health
"""

import os
import sys
import json
import logging
import argparse
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

# ---------- Logging ----------
def setup_logging(verbosity: int) -> None:
    level = logging.WARNING if verbosity == 0 else logging.INFO if verbosity == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

log = logging.getLogger("datagen_jobs")

# ---------- Output ----------
def save_json(obj: Any, out_path: Optional[str]) -> None:
    if not out_path:
        print(json.dumps(obj, indent=2, ensure_ascii=False))
        return
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
    log.info("Saved %s", out_path)

# ---------- Requests ----------
def job_path(job_id: str, action: str = "") -> str:
    path = f"/jobs/{quote(job_id, safe='')}"
    return f"{path}/{action}" if action else path

def build_configuration(args) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    if args.config:
        with open(args.config, "r", encoding="utf-8") as f:
            config.update(json.load(f))

    flags = {
        "dataType": args.data_type,
        "dataSize": args.rows,
        "inputFormat": args.input_format,
        "outputFormat": args.output_format,
        "inputBucket": args.input_bucket,
        "outputBucket": args.output_bucket,
        "inputPath": args.input_path,
        "outputPath": args.output_path,
        "timeout": args.timeout,
        "resumeWindow": args.resume_window,
        "projectId": args.project_id,
    }
    config.update({k: v for k, v in flags.items() if v is not None})
    return config

def call(client: httpx.Client, args) -> Any:
    if args.command == "submit":
        body: Dict[str, Any] = {"configuration": build_configuration(args)}
        if args.job_id:
            body["jobId"] = args.job_id
        log.info("Submitting job %s", args.job_id or "(generated id)")
        response = client.post("/jobs", json=body)
    elif args.command == "status":
        response = client.get(job_path(args.job_id))
    elif args.command == "list":
        params = {"limit": args.limit, "offset": args.offset}
        if args.status:
            params["status"] = args.status
        response = client.get("/jobs", params=params)
    elif args.command in ("cancel", "resume"):
        log.info("Requesting %s of job %s", args.command, args.job_id)
        response = client.post(job_path(args.job_id, args.command))
    else:
        response = client.get("/health")

    response.raise_for_status()
    return response.json()

# ---------- CLI ----------
def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Client for the Data Generation Pipeline API."
    )
    parser.add_argument(
        "--server",
        default=os.getenv("DATAGEN_SERVER", "http://localhost:8000/api/data-generation"),
        help="API base URL (or set DATAGEN_SERVER)."
    )
    parser.add_argument("-o", "--out", help="Path to write JSON output (default: print to stdout).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG.")

    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Submit a data generation job.")
    submit.add_argument("--job-id", help="Job id (generated by the server when omitted).")
    submit.add_argument("--config", help="JSON file holding a job configuration.")
    submit.add_argument("--data-type", help="Data format to generate (csv, json, ndjson, sql, parquet).")
    submit.add_argument("--rows", type=int, help="Number of records to generate.")
    submit.add_argument("--input-format")
    submit.add_argument("--output-format")
    submit.add_argument("--input-bucket")
    submit.add_argument("--output-bucket")
    submit.add_argument("--input-path")
    submit.add_argument("--output-path")
    submit.add_argument("--timeout", type=int, help="Maximum runtime in seconds.")
    submit.add_argument("--resume-window", type=int, help="Seconds a cancelled job stays resumable.")
    submit.add_argument("--project-id")

    for name, text in (("status", "Show a job's status."),
                       ("cancel", "Cancel a job."),
                       ("resume", "Resume a cancelled job.")):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("job_id")

    listing = sub.add_parser("list", help="List jobs.")
    listing.add_argument("--status", choices=["queued", "running", "completed", "failed", "cancelled"])
    listing.add_argument("--limit", type=int, default=50)
    listing.add_argument("--offset", type=int, default=0)

    sub.add_parser("health", help="Show pipeline health.")
    return parser

def run(args, client: Optional[httpx.Client] = None) -> int:
    setup_logging(args.verbose)

    owns_client = client is None
    client = client or httpx.Client(base_url=args.server, timeout=30.0)
    try:
        data = call(client, args)
    except httpx.HTTPStatusError as e:
        log.error("Server returned %s: %s", e.response.status_code, e.response.text)
        return 1
    except httpx.HTTPError as e:
        log.error("Request failed: %s", e)
        return 1
    finally:
        if owns_client:
            client.close()

    save_json(data, args.out)
    return 0

def main(argv=None):
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted.")

if __name__ == "__main__":
    main()

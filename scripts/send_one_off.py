#!/usr/bin/env python3
"""Create a one-off notification through a running Herald backend.

Usage:
    # Start the backend first:
    uvicorn herald.web.app:create_app --factory --port 8080

    # Welcome a prospect by email, sending immediately:
    python3 scripts/send_one_off.py prospect@example.com Jane Doe \\
        --company "Acme Inc."

    # Schedule an event invitation for later:
    python3 scripts/send_one_off.py +15551234567 Sam Lee --type SMS \\
        --context event_invitation \\
        --param event_name="Launch Party" --param event_date=2026-12-01 \\
        --param event_location="Main Hall" \\
        --send-after 2026-11-24T09:00:00+00:00

The notification is validated and dispatched by the backend exactly as an
API client's would be. The script prints the created record and, with
``--send-now``, the result of an explicit dispatch attempt.
"""

from __future__ import annotations

import argparse
import json
import sys

import httpx

DEFAULT_BASE_URL = "http://localhost:8080"

DEFAULT_TEMPLATES = {
    "prospect_welcome": (
        "prospect_welcome/body.html.j2",
        "prospect_welcome/subject.txt.j2",
    ),
    "event_invitation": (
        "event_invitation/body.html.j2",
        "Invitation: {{ event_name }}",
    ),
}


def parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Invalid --param {pair!r}; expected key=value")
        params[key] = value
    return params


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Create a one-off notification via the Herald API"
    )
    parser.add_argument("email_or_phone", help="Recipient email address or phone number")
    parser.add_argument("first_name")
    parser.add_argument("last_name")
    parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"Backend base URL (default: {DEFAULT_BASE_URL})",
    )
    parser.add_argument("--type", default="EMAIL", choices=["EMAIL", "SMS", "PUSH", "IN_APP"])
    parser.add_argument("--context", default="prospect_welcome", help="Context generator name")
    parser.add_argument("--company", help="Shortcut for --param company_name=...")
    parser.add_argument("--param", action="append", default=[], help="Context parameter key=value")
    parser.add_argument("--body-template", help="Body template path or inline template")
    parser.add_argument("--subject-template", help="Subject template path or inline template")
    parser.add_argument("--send-after", help="ISO-8601 timestamp; omit to send as soon as possible")
    parser.add_argument(
        "--send-now",
        action="store_true",
        help="Trigger an explicit dispatch after creating",
    )
    args = parser.parse_args()

    params = parse_params(args.param)
    if args.company:
        params["company_name"] = args.company

    default_body, default_subject = DEFAULT_TEMPLATES.get(args.context, (None, None))
    body_template = args.body_template or default_body
    if not body_template:
        parser.error(f"--body-template is required for context {args.context!r}")

    payload = {
        "email_or_phone": args.email_or_phone,
        "first_name": args.first_name,
        "last_name": args.last_name,
        "notification_type": args.type,
        "body_template": body_template,
        "subject_template": args.subject_template or default_subject,
        "context_name": args.context,
        "context_parameters": params,
        "send_after": args.send_after,
    }

    with httpx.Client(base_url=args.base_url, timeout=30.0) as client:
        try:
            resp = client.post("/api/notifications/one-off", json=payload)
        except httpx.ConnectError:
            print(f"ERROR: Cannot connect to {args.base_url}")
            print("Start the backend first:")
            print("  uvicorn herald.web.app:create_app --factory --port 8080")
            sys.exit(1)

        if resp.status_code >= 400:
            print(f"FAILED -> {resp.status_code}: {resp.text[:500]}")
            sys.exit(1)
        notification = resp.json()
        print(json.dumps(notification, indent=2))

        if args.send_now:
            result = client.post(f"/api/notifications/{notification['id']}/send")
            print(f"Dispatch -> {result.status_code}")
            print(json.dumps(result.json(), indent=2))


if __name__ == "__main__":
    main()

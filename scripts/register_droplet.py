#!/usr/bin/env python3
"""
Register the user-testing app as a Fluid droplet.

Reads the target company and credentials from the environment:
  FLUID_COMPANY_SUBDOMAIN  company subdomain ("mycompany" for mycompany.fluid.app)
  FLUID_API_TOKEN          Fluid API bearer token
  EMBED_URL                deployed app URL (https://your-app.example.com/user-testing)

Examples:
  python scripts/register_droplet.py
  python scripts/register_droplet.py --dry-run
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict

import httpx

DEFAULT_DOMAIN = "fluid.app"
REQUIRED_ENV = {
    "FLUID_COMPANY_SUBDOMAIN": 'Set it to your company subdomain (e.g. "mycompany").',
    "FLUID_API_TOKEN": "Get an API token from Fluid and set it as FLUID_API_TOKEN.",
    "EMBED_URL": 'Set it to your deployed app URL (e.g. "https://your-app.example.com/user-testing").',
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Register this app as a Fluid droplet.")
    parser.add_argument("--domain", default=DEFAULT_DOMAIN, help="Fluid domain (default: fluid.app).")
    parser.add_argument("--name", default="User Testing Tool", help="Droplet name.")
    parser.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds.")
    parser.add_argument("--dry-run", action="store_true", help="Print the payload without sending it.")
    return parser.parse_args()


def read_environment() -> Dict[str, str]:
    values = {key: os.environ.get(key, "").strip() for key in REQUIRED_ENV}
    missing = [key for key, value in values.items() if not value]
    if missing:
        for key in missing:
            print(f"Missing {key} environment variable. {REQUIRED_ENV[key]}", file=sys.stderr)
        raise SystemExit(1)
    return values


def build_payload(name: str, embed_url: str) -> Dict[str, Any]:
    asset_base = embed_url.replace("/user-testing", "").rstrip("/")
    return {
        "droplet": {
            "name": name,
            "embed_url": embed_url,
            "active": True,
            "settings": {
                "marketplace_page": {
                    "title": name,
                    "summary": "Scheduled end-to-end checks of your Fluid storefront",
                    "logo_url": f"{asset_base}/logo.svg",
                },
                "details_page": {
                    "title": name,
                    "summary": "Run synthetic purchase, enrollment, subscription, refund and login tests on a schedule",
                    "logo_url": f"{asset_base}/big-logo.svg",
                    "features": [
                        {
                            "name": "Scheduled Tests",
                            "summary": "Run checks every 30 minutes up to every other day",
                            "details": "Enable any test type and pick an interval; runs fire automatically and keep the last results per company.",
                        },
                        {
                            "name": "Step Diagnostics",
                            "summary": "See exactly which step failed",
                            "details": "Every run records each step with its duration and the raw diagnostic payload for failures.",
                        },
                        {
                            "name": "Analytics and Email",
                            "summary": "Track success rates and get notified",
                            "details": "Seven-day pass/fail history, per-test success rates and email summaries after scheduled runs.",
                        },
                    ],
                },
                "service_operational_countries": ["US", "CA", "UK", "AU", "DE", "FR"],
            },
            "categories": ["testing", "analytics"],
        }
    }


def main() -> int:
    args = parse_args()
    env = read_environment()
    subdomain = env["FLUID_COMPANY_SUBDOMAIN"]
    api_url = f"https://{subdomain}.{args.domain}/api/droplets"
    payload = build_payload(args.name, env["EMBED_URL"])

    print("Registering droplet with Fluid")
    print(f"- Company: {subdomain}.{args.domain}")
    print(f"- Embed URL: {env['EMBED_URL']}")

    if args.dry_run:
        print(f"[dry-run] POST {api_url}")
        print(json.dumps(payload, indent=2))
        return 0

    response = httpx.post(
        api_url,
        json=payload,
        headers={"Authorization": f"Bearer {env['FLUID_API_TOKEN']}"},
        timeout=args.timeout,
    )
    if response.is_error:
        print(f"\nError: HTTP {response.status_code}: {response.text}", file=sys.stderr)
        return 1

    print("\nDroplet registered. Details:")
    print(json.dumps(response.json(), indent=2))
    print("\nNext steps:")
    print("1) Wait for Fluid team approval")
    print("2) The droplet then appears in the Fluid Marketplace for companies to install")
    print("Keep the droplet UUID from the response for later updates.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except httpx.HTTPError as exc:
        print(f"\nError: request failed: {exc}", file=sys.stderr)
        raise SystemExit(1)

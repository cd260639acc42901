#!/usr/bin/env python3
"""
render_trace.py — Render a location trace from a running Tracemap API to HTML.

Drives the same dashboard runtime an operator uses: session check, login,
selection, trace query, render. The resulting map is written as a
standalone Leaflet page.

Usage:
    # List the users that have recorded locations
    python scripts/render_trace.py --list-users

    # One user's trace
    python scripts/render_trace.py --user 3f2a9c1e-... --out trace.html

    # Aggregate trace for a filter (criteria are ANDed)
    python scripts/render_trace.py --gender Female --commute-mode Bike

The operator password is read from TRACEMAP_PASSWORD (or .env), or
prompted for when unset. API_BASE_URL selects the server
(default http://localhost:8000).
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
load_dotenv(ROOT / ".env")

import httpx

from tracemap.core.config import settings
from tracemap.dashboard.app import DashboardApp, Route
from tracemap.dashboard.session import LoginResult
from tracemap.models.location import AGE_RANGES, COMMUTE_MODES, GENDERS


async def run(args: argparse.Namespace) -> int:
    async with httpx.AsyncClient(base_url=args.api_url, timeout=settings.query_timeout_seconds) as client:
        app = DashboardApp(client)

        if await app.navigate("/") is Route.LOGIN:
            password = os.environ.get("TRACEMAP_PASSWORD") or getpass.getpass("Operator password: ")
            result = await app.submit_login(password)
            if result is not LoginResult.SUCCESS:
                print(f"ERROR: {app.login_form.error.message}")
                return 1

        try:
            if args.list_users:
                if app.users_error:
                    print(f"ERROR: {app.users_error}")
                    return 1
                for option in app.users:
                    print(f"{option.value}\t{option.label}")
                return 0

            controller = app.controller
            if args.user:
                await controller.select_user(args.user)
            else:
                controller.set_mode("filter")
                await controller.select_filter({
                    "age_range": args.age_range,
                    "gender": args.gender,
                    "commute_mode": args.commute_mode,
                })

            # Let the surface report ready so queued updates are drawn
            await asyncio.sleep(0)

            if controller.error.message:
                print(f"ERROR: {controller.error.message}")
                return 1
            if controller.title is None:
                print(controller.message)
                return 0

            print(f"{controller.title} — {controller.point_count_label}")
            app.surface.save_html(args.out, title=controller.title)
            print(f"Wrote {args.out}")
            return 0
        finally:
            await app.logout()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Render a location trace to a Leaflet HTML page")
    parser.add_argument("--api-url", default=settings.api_base_url, help="Tracemap API base URL")
    parser.add_argument("--list-users", action="store_true", help="Print user ids and labels, then exit")
    parser.add_argument("--user", help="User id to render")
    parser.add_argument("--age-range", choices=AGE_RANGES)
    parser.add_argument("--gender", choices=GENDERS)
    parser.add_argument("--commute-mode", choices=COMMUTE_MODES)
    parser.add_argument("--out", type=Path, default=Path("trace.html"), help="Output HTML file")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    sys.exit(asyncio.run(run(args)))

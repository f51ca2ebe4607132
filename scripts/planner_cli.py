#!/usr/bin/env python3
"""Thin CLI over the planning API for support and local debugging."""

from __future__ import annotations

import argparse
import datetime as dt
import json
import os
import sys
from typing import Any, Dict, Optional

import httpx


def _default_api_base() -> str:
    return os.environ.get("LARDER_API_BASE", "http://localhost:8000/v1")


def _request(
    client: httpx.Client,
    method: str,
    endpoint: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Any:
    resp = client.request(method, endpoint, json=payload)
    if resp.status_code == 204:
        return {"status": "ok"}
    try:
        data = resp.json()
    except ValueError:
        data = {"text": resp.text}
    if resp.status_code >= 400:
        raise SystemExit(f"[{resp.status_code}] {json.dumps(data, indent=2)}")
    return data


def _user_path(args: argparse.Namespace, suffix: str) -> str:
    return f"/users/{args.user}/{suffix.lstrip('/')}"


def cmd_plan(args: argparse.Namespace, client: httpx.Client) -> Any:
    return _request(client, "GET", _user_path(args, f"meal-plans/{args.week_start}"))


def cmd_waste_risk(args: argparse.Namespace, client: httpx.Client) -> Any:
    return _request(client, "GET", _user_path(args, f"meal-plans/{args.week_start}/waste-risk"))


def cmd_availability(args: argparse.Namespace, client: httpx.Client) -> Any:
    payload: Dict[str, Any] = {"ingredients": args.ingredients}
    if args.week_start:
        payload["weekStartDate"] = args.week_start
    if args.exclude_meal:
        payload["excludeMealId"] = args.exclude_meal
    return _request(client, "POST", _user_path(args, "availability"), payload)


def cmd_event(args: argparse.Namespace, client: httpx.Client) -> Any:
    payload = {"date": args.date, "mealTypes": args.meal_types, "reason": args.reason}
    return _request(client, "POST", _user_path(args, "unplanned-events"), payload)


def cmd_dish_state(args: argparse.Namespace, client: httpx.Client) -> Any:
    endpoint = _user_path(args, f"meals/{args.meal_id}/dishes/{args.dish_id}/{args.command}")
    return _request(client, "POST", endpoint)


def _iso_date(value: str) -> str:
    try:
        return dt.date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Meal planning helper.")
    parser.add_argument(
        "--api-base",
        default=_default_api_base(),
        help="Base API URL (default: %(default)s or LARDER_API_BASE).",
    )
    parser.add_argument("--user", required=True, help="User id the request acts for.")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Show the meal plan for a week.")
    plan.add_argument("week_start", type=_iso_date, help="Any date inside the week (YYYY-MM-DD).")

    risk = sub.add_parser("waste-risk", help="List pantry items at risk of spoiling.")
    risk.add_argument("week_start", type=_iso_date)

    avail = sub.add_parser("availability", help="Check recipe ingredients against the pantry.")
    avail.add_argument("ingredients", nargs="+", help='Recipe lines, e.g. "2 cups rice".')
    avail.add_argument("--week-start", type=_iso_date, default=None, help="Honour that week's reservations.")
    avail.add_argument("--exclude-meal", default=None, help="Meal id whose reservations are ignored.")

    event = sub.add_parser("event", help="Record an unplanned event and replan the week.")
    event.add_argument("date", type=_iso_date)
    event.add_argument("meal_types", nargs="+", choices=["breakfast", "lunch", "dinner"])
    event.add_argument("--reason", default="other")

    for name, help_text in (("complete", "Mark a dish as cooked."), ("reopen", "Undo a completed dish.")):
        state = sub.add_parser(name, help=help_text)
        state.add_argument("meal_id")
        state.add_argument("dish_id")
    return parser


COMMANDS = {
    "plan": cmd_plan,
    "waste-risk": cmd_waste_risk,
    "availability": cmd_availability,
    "event": cmd_event,
    "complete": cmd_dish_state,
    "reopen": cmd_dish_state,
}


def main(argv: list[str] | None = None, *, client: httpx.Client | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    owned = client is None
    client = client or httpx.Client(base_url=args.api_base.rstrip("/"), timeout=15.0)
    try:
        data = COMMANDS[args.command](args, client)
    finally:
        if owned:
            client.close()
    print(json.dumps(data, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import httpx
import pytest

CLI_PATH = Path(__file__).resolve().parents[1] / "scripts" / "planner_cli.py"


def _load_cli():
    spec = importlib.util.spec_from_file_location("planner_cli", CLI_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _client(handler) -> httpx.Client:
    return httpx.Client(base_url="http://planner.test/v1", transport=httpx.MockTransport(handler))


def test_event_posts_camel_case_payload(capsys):
    cli = _load_cli()
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"skippedMealIds": ["meal-1"], "addedMealIds": []})

    assert cli.main(["--user", "u1", "event", "2025-03-04", "dinner", "--reason", "eating out"], client=_client(handler)) == 0
    assert seen["path"] == "/v1/users/u1/unplanned-events"
    assert seen["body"] == {"date": "2025-03-04", "mealTypes": ["dinner"], "reason": "eating out"}
    assert "meal-1" in capsys.readouterr().out


def test_error_responses_exit():
    cli = _load_cli()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"code": "not_found"}})

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--user", "u1", "complete", "meal-1", "dish-1"], client=_client(handler))
    assert "404" in str(excinfo.value)


def test_rejects_bad_dates():
    cli = _load_cli()
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--user", "u1", "plan", "next week"])

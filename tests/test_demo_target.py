"""
Covers:
  - Demo target outcome distribution mapping
  - /getbalance responses and the JSON-lines request log
  - /getlogs
"""

from __future__ import annotations

import json

import pytest
from starlette.testclient import TestClient

from webmon.demo.target import create_demo_app, pick_outcome


class TestPickOutcome:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0.0, "timeout"),
            (0.19, "timeout"),
            (0.2, 403),
            (0.39, 403),
            (0.4, 500),
            (0.49, 500),
            (0.5, 200),
            (0.99, 200),
        ],
    )
    def test_thresholds(self, value: float, expected) -> None:
        assert pick_outcome(value) == expected


def _client(tmp_path, value: float) -> TestClient:
    app = create_demo_app(str(tmp_path / "logs.txt"), rng=lambda: value, stall_seconds=0)
    return TestClient(app)


class TestGetBalance:
    @pytest.mark.parametrize("value, status", [(0.7, 200), (0.3, 403), (0.45, 500)])
    def test_status_codes(self, tmp_path, value: float, status: int) -> None:
        with _client(tmp_path, value) as client:
            response = client.get("/getbalance")
        assert response.status_code == status

    def test_balance_page(self, tmp_path) -> None:
        with _client(tmp_path, 0.9) as client:
            response = client.get("/getbalance")
        assert "Your balance is $10,000" in response.text

    def test_stall_then_empty_response(self, tmp_path) -> None:
        with _client(tmp_path, 0.1) as client:
            response = client.get("/getbalance")
        assert response.status_code == 200
        assert response.text == ""

    def test_requests_are_logged(self, tmp_path) -> None:
        with _client(tmp_path, 0.3) as client:
            client.get("/getbalance")
            client.get("/getbalance")
        lines = (tmp_path / "logs.txt").read_text().splitlines()
        assert len(lines) == 2
        entry = json.loads(lines[0])
        assert entry["outcome"] == 403
        assert entry["timestamp"].endswith("Z")
        assert "ip" in entry


class TestGetLogs:
    def test_no_logs(self, tmp_path) -> None:
        with _client(tmp_path, 0.9) as client:
            response = client.get("/getlogs")
        assert response.json() == {"message": "No logs available"}

    def test_returns_logged_requests(self, tmp_path) -> None:
        with _client(tmp_path, 0.1) as client:
            client.get("/getbalance")
            response = client.get("/getlogs")
        body = response.json()
        assert len(body) == 1
        assert body[0]["outcome"] == "timeout"

"""
Test API
========
Tests cho FastAPI endpoints.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from api.main import app


@pytest.fixture
def client():
    return TestClient(app)


class TestInfoEndpoints:
    """Test cases cho health và policy endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    def test_default_policy(self, client):
        response = client.get("/policy/default")

        assert response.status_code == 200
        data = response.json()
        assert data['min_pool_size'] == 4
        assert data['idle_hit_threshold'] == 30
        assert len(data['bands']) == 4


class TestEvaluateEndpoint:
    """Test cases cho /evaluate."""

    def test_sole_busy_instance_grows(self, client):
        """Test sole busy instance ở 95% -> provision 1."""
        response = client.post("/evaluate", json={
            "policy": {"min_pool_size": 1},
            "groups": {
                "render": [{"instance_id": "r-1", "busy": True, "utilization": 0.95}]
            }
        })

        assert response.status_code == 200
        data = response.json()
        assert data['total_provision'] == 1
        assert data['total_destroy'] == 0
        assert data['decisions'][0]['rule'] == 'growth'

    def test_sole_idle_instance_reaches_threshold(self, client):
        """Test idle_hits gửi lên được dùng cho grace period."""
        response = client.post("/evaluate", json={
            "policy": {"min_pool_size": 1},
            "groups": {
                "render": [{"instance_id": "r-1", "idle_hits": 29}]
            }
        })

        decision = response.json()['decisions'][0]
        assert decision['rule'] == 'sole_survivor'
        assert decision['destroy'] == ['r-1']
        assert decision['retire'] is True

    def test_reclamation(self, client):
        """Test group nhiều instances idle ở utilization thấp."""
        instances = [
            {"instance_id": f"r-{i}", "utilization": 0.05} for i in range(5)
        ]
        response = client.post("/evaluate", json={"groups": {"render": instances}})

        data = response.json()
        assert data['total_destroy'] == 5
        assert data['total_provision'] == 0

    def test_invalid_band(self, client):
        """Test band lower > upper -> 400."""
        response = client.post("/evaluate", json={
            "policy": {"bands": [{"lower": 0.9, "upper": 0.5, "multiplier": 1.5}]},
            "groups": {}
        })

        assert response.status_code == 400

    def test_invalid_utilization(self, client):
        """Test utilization ngoài [0, 1] -> 422."""
        response = client.post("/evaluate", json={
            "groups": {"render": [{"instance_id": "r-1", "utilization": 1.5}]}
        })

        assert response.status_code == 422


class TestSimulateEndpoint:
    """Test cases cho /simulate."""

    def test_simulate(self, client):
        response = client.post("/simulate", json={
            "workload": {"render": [1.0] * 10 + [0.0] * 10},
            "policy": {"min_pool_size": 1, "idle_hit_threshold": 3},
            "utilization_window": 3
        })

        assert response.status_code == 200
        data = response.json()
        assert len(data['ticks']) == 20
        assert data['ticks'][0]['rule'] == 'pool_floor'
        assert data['metrics']['ticks'] == 20

    def test_mismatched_lengths(self, client):
        response = client.post("/simulate", json={
            "workload": {"render": [1.0, 2.0], "encode": [1.0]}
        })

        assert response.status_code == 400

    def test_negative_work(self, client):
        response = client.post("/simulate", json={
            "workload": {"render": [1.0, -2.0]}
        })

        assert response.status_code == 400

"""
HTTP Service Tests
==================

FastAPI endpoints over temporary data files.
"""

import json

import pytest
from fastapi.testclient import TestClient

import aq_exposure.main as main
from aq_exposure.config import Settings

from conftest import TRACT_GEOID, collection, sample_feature, square_ring, tract_feature


POLYGON = square_ring(-118.31, 33.99, -118.19, 34.11)


@pytest.fixture
def data_dir(tmp_path):
    """Tract, sample and population files for one tract."""
    (tmp_path / "samples").mkdir()
    (tmp_path / "tracts.geojson").write_text(json.dumps(collection([
        tract_feature(TRACT_GEOID, -118.30, 34.00, -118.20, 34.10),
    ])))
    (tmp_path / "samples" / "2024-09-16-morning.geojson").write_text(json.dumps(collection([
        sample_feature(-118.25, 34.05, 12, "2024-09-16T06:00:00"),
        sample_feature(-118.22, 34.02, 12, "2024-09-16T06:00:00"),
    ])))
    (tmp_path / "population.json").write_text(json.dumps({TRACT_GEOID: 1000}))
    return tmp_path


@pytest.fixture
def client(data_dir, monkeypatch):
    settings = Settings.model_validate({
        "engine": {"debounce_seconds": 0},
        "tilesets": [
            {"id": "2024-09-16-morning", "date": "2024-09-16", "start_hour": 0, "end_hour": 11},
            {"id": "2024-09-16-evening", "date": "2024-09-16", "start_hour": 18, "end_hour": 23},
        ],
        "timeline": {"start": "2024-09-16T00:00:00Z", "skipped_hours": 6, "total_steps": 18},
        "data": {
            "tracts_path": str(data_dir / "tracts.geojson"),
            "samples_dir": str(data_dir / "samples"),
            "population_path": str(data_dir / "population.json"),
        },
    })
    monkeypatch.setattr(main, "settings", settings)
    with TestClient(main.app) as test_client:
        yield test_client


class TestServiceEndpoints:
    """Tests for info, health, readiness and metrics."""
    
    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "aq-exposure-engine"
        assert body["tilesets"] == 2
    
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
    
    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["tracts_loaded"] is True
    
    def test_not_ready_without_tracts(self, client):
        main.get_renderer().remove_layer("census-tracts-layer")
        response = client.get("/ready")
        assert response.status_code == 503
    
    def test_tilesets(self, client):
        body = client.get("/tilesets").json()
        assert [(w["id"], w["loaded"]) for w in body] == [
            ("2024-09-16-morning", True),
            ("2024-09-16-evening", False),
        ]
    
    def test_metrics(self, client):
        client.post("/analyze", json={"polygon": POLYGON, "date": "2024-09-16", "hour": 6})
        body = client.get("/metrics").json()
        assert body["controller"]["runs"] == 1
        assert body["population_cache"]["loaded"] is True
        assert "census-tracts-layer" in body["renderer"]["layers"]


class TestAnalyzeEndpoint:
    """Tests for POST /analyze and POST /reset."""
    
    def test_staged_updates(self, client):
        response = client.post(
            "/analyze", json={"polygon": POLYGON, "date": "2024-09-16", "hour": 6}
        )
        assert response.status_code == 200
        
        partial, complete = response.json()
        assert partial["status"] == "calculating"
        assert partial["total_population"] is None
        assert complete["status"] == "complete"
        assert complete["total_population"] == 1000
        assert complete["distribution"]["Moderate"] == 1000
        assert complete["average_concentration"] == pytest.approx(12.0)
    
    def test_draft_polygon_is_closed(self, client):
        response = client.post(
            "/analyze", json={"polygon": POLYGON[:-1], "date": "2024-09-16", "hour": 6}
        )
        assert response.json()[-1]["total_population"] == 1000
    
    def test_resent_polygon_hits_memo(self, client):
        body = {"polygon": POLYGON, "date": "2024-09-16", "hour": 6}
        client.post("/analyze", json=body)
        updates = client.post("/analyze", json=body).json()
        
        assert len(updates) == 1
        assert updates[0]["cached"] is True
    
    def test_offset_on_timeline(self, client):
        # Offset 12 lands on 18:00 after the six skipped hours
        updates = client.post("/analyze", json={"polygon": POLYGON, "offset": 12}).json()
        
        complete = updates[-1]
        assert complete["timestamp"] == "2024-09-16T18:00:00"
        assert complete["exposure_status"] == "unavailable"
        assert complete["reason"] == "LAYER_NOT_LOADED"
        assert complete["total_population"] == 1000
    
    def test_retry_after_samples_load(self, client):
        body = {"polygon": POLYGON, "offset": 12}
        first = client.post("/analyze", json=body).json()
        assert first[-1]["reason"] == "LAYER_NOT_LOADED"
        
        main.get_renderer().add_geojson("layer-2024-09-16-evening", collection([
            sample_feature(-118.25, 34.05, 60, "2024-09-16T18:00:00"),
        ]))
        retry = client.post("/analyze", json=body).json()
        
        assert retry[-1]["cached"] is False
        assert retry[-1]["exposure_status"] == "complete"
        assert retry[-1]["distribution"]["Unhealthy"] == 1000
    
    def test_invalid_polygon(self, client):
        response = client.post(
            "/analyze", json={"polygon": [[0, 0], [1, 1]], "date": "2024-09-16", "hour": 6}
        )
        assert response.status_code == 422
        assert "polygon" in response.json()["error"].lower()
    
    def test_offset_out_of_range(self, client):
        response = client.post("/analyze", json={"polygon": POLYGON, "offset": 40})
        assert response.status_code == 422
    
    def test_instant_required(self, client):
        response = client.post("/analyze", json={"polygon": POLYGON})
        assert response.status_code == 422
    
    def test_reset(self, client):
        body = {"polygon": POLYGON, "date": "2024-09-16", "hour": 6}
        client.post("/analyze", json=body)
        
        reset = client.post("/reset").json()
        assert reset["status"] == "reset"
        
        updates = client.post("/analyze", json=body).json()
        assert len(updates) == 2
        assert updates[-1]["cached"] is False


class TestAnalyzeWebSocket:
    """Tests for WS /ws/analyze."""
    
    def test_trigger_pushes_updates(self, client):
        with client.websocket_connect("/ws/analyze") as ws:
            ws.send_json({"polygon": POLYGON, "date": "2024-09-16", "hour": 6, "dark_mode": True})
            partial = ws.receive_json()
            complete = ws.receive_json()
        
        assert partial["status"] == "calculating"
        assert partial["highlight"]["fill_color"] == "#7C3AED"
        assert complete["status"] == "complete"
        assert complete["generation"] == partial["generation"]
    
    def test_invalid_trigger_gets_error(self, client):
        with client.websocket_connect("/ws/analyze") as ws:
            ws.send_json({"polygon": [[0, 0]], "date": "2024-09-16", "hour": 6})
            reply = ws.receive_json()
        
        assert "error" in reply
    
    def test_clients_do_not_supersede_each_other(self, client):
        main.settings.engine.debounce_seconds = 0.2
        far = square_ring(-100.0, 40.0, -99.9, 40.1)
        
        with client.websocket_connect("/ws/analyze") as first, \
                client.websocket_connect("/ws/analyze") as second:
            first.send_json({"polygon": POLYGON, "date": "2024-09-16", "hour": 6})
            second.send_json({"polygon": far, "date": "2024-09-16", "hour": 6})
            
            first_updates = [first.receive_json(), first.receive_json()]
            second_update = second.receive_json()
            assert client.get("/metrics").json()["streams"] == 2
        
        assert [u["status"] for u in first_updates] == ["calculating", "complete"]
        assert first_updates[-1]["total_population"] == 1000
        assert second_update["status"] == "noTracts"
    
    def test_disconnect_cancels_pending_trigger(self, client):
        main.settings.engine.debounce_seconds = 0.2
        
        with client.websocket_connect("/ws/analyze") as ws:
            controller = next(iter(main._stream_controllers))
            ws.send_json({"polygon": POLYGON, "date": "2024-09-16", "hour": 6})
            # Reply to a later invalid trigger means the first one was submitted
            ws.send_json({"polygon": [[0, 0]], "offset": 0})
            assert "error" in ws.receive_json()
        
        assert main._stream_controllers == set()
        assert controller.generation == 2
        assert controller.is_idle
        assert controller.get_metrics()["runs"] == 0

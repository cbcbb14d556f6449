from datetime import datetime

from revvoice.core.health import ServerHealth


def test_health_payload(clock):
    health = ServerHealth(clock=clock)
    health.connection_opened()
    health.connection_opened()
    health.connection_closed()
    clock.advance(12.5)

    body = health.health(active_sessions=3)
    assert body["status"] == "healthy"
    assert body["activeConnections"] == 1
    assert body["activeSessions"] == 3
    assert body["uptime"] == 12.5
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


def test_connection_count_never_negative():
    health = ServerHealth()
    health.connection_closed()
    assert health.active_connections == 0


def test_status_merges_service_fields():
    health = ServerHealth()
    body = health.status({"model": "primary", "activeSessions": 0})
    assert body == {"status": "running", "model": "primary", "activeSessions": 0, "activeConnections": 0}

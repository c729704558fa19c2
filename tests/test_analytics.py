"""Tests for dashboard metrics."""

from datetime import datetime, timedelta, timezone

from services.analytics import compute_dashboard_metrics, normalize_timeframe, timeframe_start

NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)  # 11:00 in New York

CALLS = [
    {"id": "c1", "status": "completed", "duration_seconds": 120, "from_number": "+15550000001",
     "created_at": "2026-10-19T14:00:00+00:00", "satisfaction_rating": 4},
    {"id": "c2", "status": "missed", "duration_seconds": 0, "from_number": "+15550000002",
     "created_at": "2026-10-19T03:00:00+00:00"},
    {"id": "c3", "status": "in_progress", "duration_seconds": 30, "from_number": "+15550000003",
     "created_at": "2026-10-18T12:00:00+00:00"},
    {"id": "c4", "status": "completed", "duration_seconds": 210, "from_number": "+15550000004",
     "created_at": "2026-10-17T12:00:00+00:00", "satisfaction_rating": 5},
]

APPOINTMENTS = [
    {"id": "a1", "customer_phone": "+15550000001", "status": "scheduled", "estimated_value": 250,
     "start_time": "2026-10-19T18:00:00+00:00"},
    {"id": "a2", "customer_phone": "+15550000004", "status": "cancelled", "estimated_value": 900,
     "start_time": "2026-10-19T19:00:00+00:00"},
    {"id": "a3", "customer_phone": "+15559999999", "status": "confirmed", "estimated_value": "125.50",
     "start_time": "2026-10-22T14:00:00+00:00"},
]


class TestTimeframes:
    def test_unknown_timeframe_defaults_to_week(self):
        assert normalize_timeframe("1y") == "7d"
        assert normalize_timeframe(None) == "7d"
        assert normalize_timeframe("30d") == "30d"

    def test_timeframe_start(self):
        assert timeframe_start("24h", NOW) == NOW - timedelta(days=1)


class TestComputeDashboardMetrics:
    def test_metrics(self, business):
        metrics = compute_dashboard_metrics(CALLS, APPOINTMENTS, business, {"is_active": True}, "7d", NOW)

        assert metrics["total_calls"] == 4
        assert metrics["completed_calls"] == 2
        assert metrics["missed_calls"] == 1
        assert metrics["active_calls"] == 1
        assert metrics["avg_call_duration"] == 90.0
        # Two of four callers have an appointment, cancelled or not
        assert metrics["booking_conversion_rate"] == 50
        assert metrics["total_revenue"] == 375.5
        assert metrics["today_bookings"] == 1
        # 03:00 UTC is still the 18th in New York
        assert metrics["calls_today"] == 1
        assert metrics["customer_satisfaction"] == 4.5
        assert metrics["is_live"] is True
        assert metrics["phone_number"] == business["phone_number"]

    def test_empty_business(self, business):
        metrics = compute_dashboard_metrics([], [], business, None, None, NOW)
        assert metrics["total_calls"] == 0
        assert metrics["avg_call_duration"] == 0.0
        assert metrics["booking_conversion_rate"] == 0
        assert metrics["customer_satisfaction"] == 5
        assert metrics["is_live"] is False
        assert metrics["timeframe"] == "7d"

    def test_recent_lists_are_capped(self, business):
        calls = [{"id": str(i), "status": "completed"} for i in range(15)]
        metrics = compute_dashboard_metrics(calls, [], business, None, "30d", NOW)
        assert len(metrics["recent_calls"]) == 10
        assert metrics["recent_calls"][0]["id"] == "0"


class TestDashboardRoute:
    def test_dashboard(self, client, mock_db, business, auth_headers):
        mock_db.get_business.return_value = business
        mock_db.list_call_logs.return_value = CALLS
        mock_db.list_appointments.return_value = APPOINTMENTS
        mock_db.get_active_agent.return_value = {"is_active": True}

        response = client.get("/api/dashboard?timeframe=30d", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_calls"] == 4
        assert body["timeframe"] == "30d"

import httpx

from mealroute.core.config import settings
from mealroute.services.journey_engine import RouteClient, TrafficMonitor
from mealroute.services.journey_engine.traffic_monitor import segment_multiplier


def test_segment_multiplier_prefers_reported_value():
    assert segment_multiplier({"traffic_multiplier": "1.8", "live_duration": 100, "baseline_duration": 100}) == 1.8


def test_segment_multiplier_from_durations():
    assert segment_multiplier({"live_duration": 900, "baseline_duration": 600}) == 1.5
    assert segment_multiplier({"live_duration": 900, "baseline_duration": 0}) is None
    assert segment_multiplier({"from_stop": 1}) is None


def test_threshold_is_inclusive():
    assessment = TrafficMonitor.evaluate([{"traffic_multiplier": 1.5}], threshold=1.5)
    assert assessment.heavy_traffic_detected is True


def test_evaluate_uses_worst_segment():
    segments = [{"traffic_multiplier": 1.1}, {"live_duration": 300, "baseline_duration": 100}, {"note": "closed"}]

    assessment = TrafficMonitor.evaluate(segments, threshold=2.0)

    assert assessment.max_traffic_multiplier == 3.0
    assert assessment.heavy_traffic_detected is True
    assert [s["heavy"] for s in assessment.traffic_segments] == [False, True, False]


def test_no_traffic_data_is_not_heavy():
    assessment = TrafficMonitor.evaluate([], threshold=1.5)

    assert assessment.heavy_traffic_detected is False
    assert assessment.max_traffic_multiplier is None
    assert assessment.reason == "No traffic data for remaining segments"


def test_engine_threshold_overrides_configured_one():
    def handler(request):
        return httpx.Response(200, json={
            "success": True,
            "reoptimize_threshold": 2.5,
            "traffic_segments": [{"traffic_multiplier": 2.0}],
        })

    monitor = TrafficMonitor(RouteClient(settings, transport=httpx.MockTransport(handler)), settings)
    assessment = monitor.check("R1")

    assert assessment.threshold == 2.5
    assert assessment.heavy_traffic_detected is False


def test_configured_threshold_is_default():
    def handler(request):
        return httpx.Response(200, json={"success": True, "traffic_segments": [{"traffic_multiplier": 2.0}]})

    monitor = TrafficMonitor(RouteClient(settings, transport=httpx.MockTransport(handler)), settings)
    assessment = monitor.check("R1")

    assert assessment.threshold == settings.TRAFFIC_REOPTIMIZE_THRESHOLD
    assert assessment.heavy_traffic_detected is True

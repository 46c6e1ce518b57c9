"""
Traffic evaluation for remaining route segments.

The engine estimates live traffic per segment; this module only decides
whether the worst segment crosses the reoptimization threshold.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from mealroute.core.logging_config import logger


@dataclass
class TrafficAssessment:
    route_id: Optional[str]
    heavy_traffic_detected: bool
    max_traffic_multiplier: Optional[float]
    threshold: float
    traffic_segments: List[Dict[str, Any]] = field(default_factory=list)
    reason: Optional[str] = None


def segment_multiplier(segment: Dict[str, Any]) -> Optional[float]:
    """
    Live/baseline multiplier of one segment.

    Uses ``traffic_multiplier`` when the engine supplies it, otherwise
    ``live_duration / baseline_duration``. Returns None when neither is usable.
    """
    value = segment.get("traffic_multiplier")
    if value is not None:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    live = segment.get("live_duration")
    baseline = segment.get("baseline_duration")
    try:
        live = float(live)
        baseline = float(baseline)
    except (TypeError, ValueError):
        return None
    if baseline <= 0:
        return None
    return live / baseline


class TrafficMonitor:
    """Evaluates engine traffic estimates against a threshold."""

    def __init__(self, route_client, settings):
        self.route_client = route_client
        self.settings = settings

    @staticmethod
    def evaluate(
        segments: List[Dict[str, Any]],
        threshold: float,
        route_id: Optional[str] = None,
    ) -> TrafficAssessment:
        """
        Decide whether traffic warrants reoptimization.

        Heavy traffic means the largest segment multiplier is at or above
        ``threshold``. Segments without a usable multiplier are reported but
        ignored for the decision.
        """
        annotated = []
        multipliers = []
        for segment in segments or []:
            if not isinstance(segment, dict):
                continue
            multiplier = segment_multiplier(segment)
            if multiplier is not None:
                multipliers.append(multiplier)
            annotated.append({
                **segment,
                "traffic_multiplier": multiplier,
                "heavy": multiplier is not None and multiplier >= threshold,
            })

        max_multiplier = max(multipliers) if multipliers else None
        heavy = max_multiplier is not None and max_multiplier >= threshold

        if max_multiplier is None:
            reason = "No traffic data for remaining segments"
        elif heavy:
            reason = f"Traffic multiplier {max_multiplier:.2f} reached threshold {threshold:.2f}"
        else:
            reason = f"Traffic multiplier {max_multiplier:.2f} below threshold {threshold:.2f}"

        return TrafficAssessment(
            route_id=route_id,
            heavy_traffic_detected=heavy,
            max_traffic_multiplier=max_multiplier,
            threshold=threshold,
            traffic_segments=annotated,
            reason=reason,
        )

    def check(
        self,
        route_id: str,
        current_location: Optional[Dict[str, float]] = None,
        check_all_segments: bool = True,
    ) -> TrafficAssessment:
        """
        Fetch live traffic from the engine and evaluate it.

        The engine's ``reoptimize_threshold`` is used when it reports one,
        otherwise ``TRAFFIC_REOPTIMIZE_THRESHOLD``.

        Raises:
            UpstreamError: If the engine call fails
        """
        response = self.route_client.check_traffic(
            route_id=route_id,
            current_location=current_location,
            check_all_segments=check_all_segments,
        )
        threshold = response.get("reoptimize_threshold")
        try:
            threshold = float(threshold) if threshold is not None else self.settings.TRAFFIC_REOPTIMIZE_THRESHOLD
        except (TypeError, ValueError):
            threshold = self.settings.TRAFFIC_REOPTIMIZE_THRESHOLD

        assessment = self.evaluate(response.get("traffic_segments") or [], threshold, route_id=route_id)
        logger.info(
            f"Traffic check for route {route_id}: max={assessment.max_traffic_multiplier}, "
            f"threshold={threshold}, heavy={assessment.heavy_traffic_detected}"
        )
        return assessment

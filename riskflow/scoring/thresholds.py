"""
Threshold ladder configuration.
"""

from typing import Any

from riskflow.core.models import RiskSegment, ThresholdLadder, ThresholdStep


def parse_threshold_ladder(section: dict[str, Any] | None) -> ThresholdLadder:
    """
    Build a ThresholdLadder from a config mapping (default ladder when empty).

    Expected format:
    ```yaml
    thresholds:
      steps:
        - {upper: 0.05, segment: low}
        - {upper: 0.20, segment: medium}
      top: high
    ```
    """
    if not section:
        return ThresholdLadder.default()
    steps = [ThresholdStep(**step) for step in section.get("steps", [])]
    return ThresholdLadder(steps=steps, top=RiskSegment(section.get("top", "high")))


def tiered_ladder() -> ThresholdLadder:
    """Four-tier ladder: < 0.05 low, < 0.20 medium, < 0.50 high, otherwise critical."""
    return ThresholdLadder(
        steps=[
            ThresholdStep(upper=0.05, segment=RiskSegment.LOW),
            ThresholdStep(upper=0.20, segment=RiskSegment.MEDIUM),
            ThresholdStep(upper=0.50, segment=RiskSegment.HIGH),
        ],
        top=RiskSegment.CRITICAL,
    )

"""
Numeric helpers shared by normalization and aggregation.
"""
import math


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, ties toward positive infinity.

    Python's round() sends ties to the even neighbour (1000.5 -> 1000);
    stored prices per m² and published averages round 1000.5 to 1001.
    """
    return int(math.floor(value + 0.5))

"""Chart downsampling for stream metric time series."""

import logging
from typing import Any, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_TARGET_SIZE = 2000


def _viewers(point: Any) -> Optional[float]:
    """Default y-value: concurrent viewers of a chart point or snapshot row."""
    if isinstance(point, dict):
        return point.get('viewers')
    return getattr(point, 'viewer_count', None)


def stride_decimate(points: Sequence[Any], target_size: int) -> List[Any]:
    """Fixed-stride decimation that always keeps the first and last point.

    Args:
        points: Ordered time series
        target_size: Maximum number of points to return

    Returns:
        Reduced list (at most `target_size` points)
    """
    n = len(points)
    if n <= target_size:
        return list(points)
    if n == 0:
        return []
    if n <= 2:
        return list(points)
    if target_size < 3:
        return [points[0], points[-1]]

    stride = max(1, (n - 2) // (target_size - 2))
    sampled = [points[0]]
    index = 1
    while len(sampled) < target_size - 1 and index < n - 1:
        sampled.append(points[index])
        index += stride
    sampled.append(points[-1])
    return sampled


def lttb(points: Sequence[Any], target_size: int, key: Callable[[Any], Optional[float]] = _viewers) -> List[Any]:
    """Largest-Triangle-Three-Buckets reduction.

    The sequence index is the x-axis and `key(point)` the y-axis; missing
    values count as 0 for point selection only. The returned points are the
    original objects, untouched.
    """
    n = len(points)
    if n <= target_size:
        return list(points)
    if n <= 2:
        return list(points)
    if target_size < 3:
        return [points[0], points[-1]]

    ys = [float(key(point) or 0) for point in points]
    every = (n - 2) / (target_size - 2)

    sampled = [points[0]]
    a = 0

    for i in range(target_size - 2):
        # Centroid of the next bucket
        avg_start = int((i + 1) * every) + 1
        avg_end = min(int((i + 2) * every) + 1, n)
        avg_len = max(avg_end - avg_start, 1)
        avg_x = (avg_start + avg_end - 1) / 2.0
        avg_y = sum(ys[avg_start:avg_end]) / avg_len

        range_start = int(i * every) + 1
        range_end = int((i + 1) * every) + 1

        ax = a
        ay = ys[a]
        dx = ax - avg_x
        dy = avg_y - ay
        max_area = -1.0
        chosen = range_start

        for j in range(range_start, range_end):
            area = abs(dx * (ys[j] - ay) - (ax - j) * dy)
            if area > max_area:
                max_area = area
                chosen = j

        sampled.append(points[chosen])
        a = chosen

    sampled.append(points[-1])
    return sampled


def downsample(
    points: Optional[Sequence[Any]],
    target_size: int = DEFAULT_TARGET_SIZE,
    key: Optional[Callable[[Any], Optional[float]]] = None
) -> List[Any]:
    """Reduce a time series to at most `target_size` points for charting.

    Returns the input unchanged when it already fits. Otherwise runs LTTB,
    falling back to fixed-stride decimation if anything goes wrong. Never
    raises; the first and last points are always kept.

    Args:
        points: Ordered time series (dicts with 'viewers', or MetricSnapshot rows)
        target_size: Desired output size
        key: Extracts the y-value from a point (defaults to viewers)

    Returns:
        Downsampled list of the original point objects
    """
    if not points:
        return []

    try:
        points = list(points)
        if len(points) <= target_size:
            return points
        return lttb(points, target_size, key or _viewers)

    except Exception as e:
        logger.warning(f"LTTB downsampling failed, using stride decimation: {e}")
        try:
            return stride_decimate(points, target_size)
        except Exception:
            logger.exception("Stride decimation failed")
            return list(points[:1]) + list(points[-1:]) if len(points) > 1 else list(points)

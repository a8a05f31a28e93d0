"""Analytics helpers for stream chart data."""

from streamwatch.analytics.downsample import downsample, lttb, stride_decimate

__all__ = ["downsample", "lttb", "stride_decimate"]

from livecheck.primitives.common import LiveCheckModel, monotonic_now, short_digest

__all__ = ["LiveCheckModel", "monotonic_now", "short_digest"]

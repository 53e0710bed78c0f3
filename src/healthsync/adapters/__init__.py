"""Sample source adapters.

Each adapter implements the SampleSource ABC and handles:
- Reading samples from one health data store
- Mapping store-specific values (sleep stages, workout types) to the
  canonical labels the aggregation engine expects

Available adapters:
    AppleHealthExportSource - Apple Health ``export.xml`` file
"""

from src.healthsync.adapters.apple_health import AppleHealthExportSource
from src.healthsync.base import SampleSource

__all__ = [
    "AppleHealthExportSource",
    "SOURCE_REGISTRY",
    "get_source",
]

# Registry: source_id → adapter class
SOURCE_REGISTRY: dict[str, type[SampleSource]] = {
    AppleHealthExportSource.SOURCE_ID: AppleHealthExportSource,
}


def get_source(source_id: str, **kwargs) -> SampleSource:
    """Instantiate the adapter registered for a given source slug.

    Args:
        source_id: e.g. 'apple_health_export'
        **kwargs:  Passed to the adapter's constructor.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in SOURCE_REGISTRY:
        raise KeyError(
            f"No sample source registered for '{source_id}'. "
            f"Available: {list(SOURCE_REGISTRY)}"
        )
    return SOURCE_REGISTRY[source_id](**kwargs)

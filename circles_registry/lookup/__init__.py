# Cache read side: status checks, statistics, staleness.

from circles_registry.lookup.status import StatusLookup

__all__ = ["StatusLookup"]

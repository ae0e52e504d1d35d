"""Protocol interfaces for the lending gateway."""
from .request_filter import RequestFilter
from .upstream import UpstreamLink

__all__ = ["RequestFilter", "UpstreamLink"]

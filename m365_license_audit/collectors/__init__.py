from .users import UserLicenseCollector, DirectoryFetchError, parse_graph_datetime

__all__ = [
    "UserLicenseCollector",
    "DirectoryFetchError",
    "parse_graph_datetime",
]

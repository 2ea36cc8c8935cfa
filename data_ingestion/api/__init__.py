from data_ingestion.api.base_client import BaseAPIClient
from data_ingestion.api.midgard_client import MidgardClient, RawMeta, RawPage

__all__ = [
    "BaseAPIClient",
    "MidgardClient",
    "RawMeta",
    "RawPage",
]

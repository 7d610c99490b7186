from .donorbox_ingest import DonorboxIngestor
from .stripe_ingest import StripeIngestor

__all__ = ["DonorboxIngestor", "StripeIngestor"]

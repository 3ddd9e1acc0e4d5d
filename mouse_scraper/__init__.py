"""Theme Park Catalog Scraper
Async catalog scraper with browser-derived sessions and a public fallback source
"""

__version__ = "0.1.0"

from .catalog import CatalogService
from .exceptions import (
    AuthClassifiedError,
    CredentialEstablishmentError,
    MouseScraperError,
    NormalizationError,
    TransientUpstreamError,
)
from .finder_client import FinderClient
from .models import (
    AcquisitionResult,
    AcquisitionState,
    Destination,
    EntityKind,
    ErrorType,
    Session,
)
from .orchestrator import AcquisitionOrchestrator
from .session_manager import SessionManager
from .wiki_client import WikiClient

__all__ = [
    "__version__",
    "AcquisitionOrchestrator",
    "AcquisitionResult",
    "AcquisitionState",
    "AuthClassifiedError",
    "CatalogService",
    "CredentialEstablishmentError",
    "Destination",
    "EntityKind",
    "ErrorType",
    "FinderClient",
    "MouseScraperError",
    "NormalizationError",
    "Session",
    "SessionManager",
    "TransientUpstreamError",
    "WikiClient",
]

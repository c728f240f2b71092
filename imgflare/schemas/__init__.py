"""Schema package exports."""
from .remote import ApiEnvelope, ApiMessage, RemoteImage

__all__ = ["ApiEnvelope", "ApiMessage", "RemoteImage"]

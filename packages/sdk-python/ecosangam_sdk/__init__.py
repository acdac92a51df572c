"""EcoSangam Python SDK."""

__version__ = "0.1.0"

from ecosangam_sdk.client import EcoSangamClient

__all__ = ["EcoSangamClient"]

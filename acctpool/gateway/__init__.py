"""
Cloud gateway: AWS capability interfaces and their implementations.
"""

from .base import CloudGateway, IamGateway, OrganizationsGateway, StsGateway, TaggingGateway

__all__ = [
    "CloudGateway",
    "IamGateway",
    "OrganizationsGateway",
    "StsGateway",
    "TaggingGateway",
]

"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .user import UserFactory, MechanicFactory, InactiveMechanicFactory
from .customer import CustomerFactory, VehicleFactory, ElevatorFactory
from .quote import QuoteItemFactory, PartItemFactory, DiagnosisFactory

__all__ = [
    "UserFactory",
    "MechanicFactory",
    "InactiveMechanicFactory",
    "CustomerFactory",
    "VehicleFactory",
    "ElevatorFactory",
    "QuoteItemFactory",
    "PartItemFactory",
    "DiagnosisFactory",
]

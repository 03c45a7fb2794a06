"""
Customer and vehicle test factories.

Generates realistic directory records referenced by quotes.
"""

import uuid

import factory
from faker import Faker

fake = Faker()


def _placa() -> str:
    """Mercosul-style plate, e.g. ABC1D23."""
    return fake.bothify("???#?##", letters="ABCDEFGHIJKLMNOPQRSTUVWXYZ")


class CustomerFactory(factory.Factory):
    """
    Factory for generating Customer test data.

    Usage:
        customer = CustomerFactory(tenant_id=tenant)
    """

    class Meta:
        model = dict

    id = factory.LazyFunction(lambda: str(uuid.uuid4()))
    tenant_id = factory.LazyFunction(lambda: str(uuid.uuid4()))
    name = factory.LazyFunction(fake.name)
    phone = factory.LazyFunction(lambda: fake.numerify("119########"))
    email = factory.LazyFunction(lambda: fake.email().lower())


class VehicleFactory(factory.Factory):
    """Factory for customer vehicles (customer_id must be passed)."""

    class Meta:
        model = dict

    id = factory.LazyFunction(lambda: str(uuid.uuid4()))
    customer_id = None
    placa = factory.LazyFunction(_placa)
    vin = factory.LazyFunction(lambda: fake.bothify("#?#??#?#?##??####", letters="ABCDEFGHJKLMNPRSTUVWXYZ"))
    make = factory.LazyFunction(lambda: fake.random_element(["Volkswagen", "Fiat", "Chevrolet", "Toyota"]))
    model = factory.LazyFunction(lambda: fake.random_element(["Gol", "Uno", "Onix", "Corolla"]))
    year = factory.LazyFunction(lambda: fake.random_int(min=2005, max=2025))
    mileage = factory.LazyFunction(lambda: fake.random_int(min=1000, max=250000))


class ElevatorFactory(factory.Factory):
    """Factory for service bays."""

    class Meta:
        model = dict

    id = factory.LazyFunction(lambda: str(uuid.uuid4()))
    tenant_id = factory.LazyFunction(lambda: str(uuid.uuid4()))
    name = factory.Sequence(lambda n: f"Elevador {n + 1}")
    number = factory.Sequence(lambda n: f"E{n + 1:02d}")
    status = "free"

"""
Quote payload factories.

Build request bodies for the quote endpoints and services.
"""

import factory
from faker import Faker

fake = Faker()


class QuoteItemFactory(factory.Factory):
    """
    Line item payload.

    Usage:
        item = QuoteItemFactory(name="Troca de vela", quantity=4, unit_cost="25.00")
    """

    class Meta:
        model = dict

    type = "service"
    name = factory.LazyFunction(lambda: fake.random_element(["Troca de óleo", "Alinhamento", "Troca de vela"]))
    quantity = 1
    unit_cost = factory.LazyFunction(lambda: f"{fake.random_int(min=10, max=500)}.00")


class PartItemFactory(QuoteItemFactory):
    type = "part"
    name = factory.LazyFunction(lambda: fake.random_element(["Filtro de óleo", "Pastilha de freio", "Vela"]))


class DiagnosisFactory(factory.Factory):
    """Diagnosis payload as a mechanic would submit it."""

    class Meta:
        model = dict

    identified_problem_category = "motor"
    identified_problem_description = factory.LazyFunction(fake.sentence)
    recommendations = factory.LazyFunction(fake.sentence)
    diagnostic_notes = factory.LazyFunction(fake.sentence)
    estimated_hours = 2.5

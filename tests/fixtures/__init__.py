"""
Reusable test data for the weather Markov engine.
"""

from .weather_payloads import make_records, make_weatherapi_payload

__all__ = [
    "make_records",
    "make_weatherapi_payload",
]

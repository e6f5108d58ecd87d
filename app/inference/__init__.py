"""
app/inference package marker.
"""

from app.inference.country_inferrer import CountryInferrer

__all__ = [
    "CountryInferrer",
]

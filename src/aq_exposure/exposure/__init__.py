"""
Exposure Module
===============

Population exposure to the concentration field.

Components:
    - ExposureCalculator: sample query, mean, banding
    - ExposureOutcome: stage outcome (complete / unavailable / error)
"""

from aq_exposure.exposure.calculator import ExposureCalculator, ExposureOutcome

__all__ = [
    "ExposureCalculator",
    "ExposureOutcome",
]

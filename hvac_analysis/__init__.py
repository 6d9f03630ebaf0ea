"""Weather-normalized HVAC energy analysis for a single home."""

from .config import AnalysisConfig, EnvelopeSpec, HouseConfig, load_config
from .pipeline import AnalysisResult, HvacAnalysisPipeline, save_structured_results
from .records import AnomalyRecord, ClassifiedDay, DailyEnergyRecord, DayType, Direction
from .results import (AnalysisError, DegenerateFitError, Fatal, InsufficientDataError,
                      MalformedResponseError, Ok, Skipped)

__version__ = '0.1.0'

__all__ = [
    'AnalysisConfig', 'EnvelopeSpec', 'HouseConfig', 'load_config',
    'AnalysisResult', 'HvacAnalysisPipeline', 'save_structured_results',
    'AnomalyRecord', 'ClassifiedDay', 'DailyEnergyRecord', 'DayType', 'Direction',
    'AnalysisError', 'DegenerateFitError', 'Fatal', 'InsufficientDataError',
    'MalformedResponseError', 'Ok', 'Skipped',
]

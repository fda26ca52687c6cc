"""Metric dimensions fetched for every report run."""
from enum import Enum


class DimensionName(str, Enum):
    BASIC_CVR = "basic_cvr"
    CVR_NO_ADS = "cvr_no_ads"
    FUNNEL = "funnel"
    TRAFFIC_SOURCES = "traffic_sources"
    DEMOGRAPHICS = "demographics"

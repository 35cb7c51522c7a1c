"""Scalebench: measure how quickly an OpenShift cluster adds worker capacity."""

__version__ = "0.3.0"

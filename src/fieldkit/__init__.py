"""Fieldkit: camera-based field tests (jump, VBT) and lactate threshold analysis."""

__version__ = "0.1.0"

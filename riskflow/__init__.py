"""
riskflow: validation, feature derivation and risk scoring for loan and
telemetry batches, with reproducible, versioned results.
"""

__version__ = "0.1.0"

"""
RegionFit - Localization rule configuration and scoring

Evaluates structured snapshots of web pages against versioned, region-specific
localization rules, with deterministic A/B testing of rule variants and
reconciliation against advisory scores.
"""

__version__ = "0.1.0"

# Configuration is available at top level for convenience
from regionfit.config import config

__all__ = ["config", "__version__"]

"""
TARS - Provider Orchestration Core

Routes AI generation requests for the desktop agent's feature modules
(archivist, formatter, QA engine, outreach generator) across several
interchangeable LLM providers, with ordered fallback and health tracking.
"""

__version__ = "1.0.0"
__author__ = "TARS PC Agent"

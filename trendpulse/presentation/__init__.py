"""
TrendPulse – Presentation Layer
=================================
API HTTP de solo lectura (FastAPI routes y schemas).
"""

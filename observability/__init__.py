"""
Structured event emission (OBS envelope) shared by the gateway and the pipeline.
"""

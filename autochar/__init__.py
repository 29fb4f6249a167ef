"""
AutoChar Studio backend

Local transcription server used by the AutoChar Studio desktop app.
"""

__version__ = "1.0.0"

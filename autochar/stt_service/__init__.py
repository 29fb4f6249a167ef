"""
STT (Speech-to-Text) Service

Transcribes uploaded audio with the whisper.cpp command-line engine.
Features:
- Engine binary and model discovery across deployment layouts
- WAV header validation with quarantine of malformed uploads
- Ordered fallback across direct, simple and library-based execution
- Health and resource diagnostics
"""

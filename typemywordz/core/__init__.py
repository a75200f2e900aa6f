"""Core transcription components."""

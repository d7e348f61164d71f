"""terminal ui for podcast canvas."""

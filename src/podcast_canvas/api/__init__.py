"""http api for podcast canvas."""

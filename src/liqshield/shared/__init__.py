"""Cross-domain messages, errors, messaging and storage helpers."""

"""Bundled flashcard content."""

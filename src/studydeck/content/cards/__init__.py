"""Bundled flashcard decks, one JSON file per technology."""

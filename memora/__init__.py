"""Memora: flashcard library and quiz-session engine."""

__version__ = "0.1.0"

"""Closeword multiplayer word-guessing game backend."""

"""Telephony-facing building blocks: instruction rendering, audio codec and media serving.

Nothing here keeps per-call state; sessions live in ``agents.sessions``.
"""

"""
School access engine.

Resolves a single authoritative access decision for a user, a school and a
content item (course, lesson, quiz, download), and gates what content may be
fetched, rendered, copied or downloaded from that decision.
"""

__version__ = "0.1.0"

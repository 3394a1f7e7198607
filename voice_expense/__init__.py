"""
Voice Expense - Source Package

Turns a spoken sentence into a proposed expense for a bill-splitting group.

DESIGN PRINCIPLES:
1. AI proposes -> Human reviews in the expense form
2. Fail early, fail visibly, with one error taxonomy everywhere
3. The task record is the only state shared by client and server
4. Never leave the microphone open
5. Every step of a task is auditable
"""

__version__ = "1.0.0"
__author__ = "Voice Expense Team"

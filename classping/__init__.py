"""
classping - lead-time class reminders for group chats
"""

__version__ = "0.1.0"
__logo__ = "🔔"

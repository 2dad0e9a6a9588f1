"""
CHZZK Command Chatbot

A multi-tenant chat bot for CHZZK live-stream channels. Each channel owner
gets a supervised chat session that answers commands stored in Firestore.
"""

__version__ = "1.0.0"
__author__ = "CHZZK Command Chatbot"

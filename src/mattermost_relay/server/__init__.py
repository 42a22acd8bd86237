"""Mattermost Relay Server

FastAPI application that hosts:
- The relay REST API under /api (auth, users, direct conversations, messages)
- Health endpoint
"""

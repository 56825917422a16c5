"""
API routers for the story-playing service
"""

"""
storyplay: adaptive quiz-story playing engine and web service
"""

__version__ = "0.1.0"

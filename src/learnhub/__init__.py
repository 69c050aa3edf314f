"""LearnHub — real-time chat backend for the social learning platform.

Communities and direct conversations share one delivery path: inbound
frames are persisted, resolved to a recipient set, and pushed to every
member who currently holds a live WebSocket connection.
"""

__version__ = "0.1.0"

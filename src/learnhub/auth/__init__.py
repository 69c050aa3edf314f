"""Authentication.

Bearer JWTs for the history API and signed handshake tokens for the
chat WebSocket. Both resolve to the same user id / email pair.
"""

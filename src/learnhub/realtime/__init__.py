"""Real-time chat delivery — WebSocket connections + in-process fan-out.

Messages flow through one path:
1. Client frame → envelope validation (envelope.py)
2. Persist → resolve recipients → push (dispatcher.py)
3. Push targets come from the identity → connection registry (registry.py),
   kept current by the lifecycle manager (lifecycle.py)

Single process by design: a user connected to another server process
will not receive pushes from this one.
"""

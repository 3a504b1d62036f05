"""
Concierge chat core.

Conversation contexts on the AI service, the per-identity session store, and
the turn orchestrator that ties them together.
"""
